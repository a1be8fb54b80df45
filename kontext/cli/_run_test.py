# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any

import py.path
import pytest

import kontext
from ._run import run

TAG = "localhost:5000/ctx:latest"


@pytest.fixture
def use_fake_registry(monkeypatch: Any, fake_registry: Any) -> Any:

    monkeypatch.setattr(
        kontext.Config,
        "get_client",
        lambda self: kontext.registry.Client(session=fake_registry),
    )
    return fake_registry


def test_version(capsys: Any) -> None:

    assert run(["version"]) == 0
    assert capsys.readouterr().out.strip() == kontext.__version__


def test_no_command() -> None:

    assert run([]) == 1


@pytest.mark.parametrize(
    "argv",
    [
        ["publish"],
        ["publish", "--tag", TAG],
        ["publish", "--directory", "/does/not/exist", "--tag", TAG],
        ["publish", "--directory", ".", "--tag", "Not Valid"],
    ],
)
def test_publish_usage_errors(argv: Any, use_fake_registry: Any) -> None:

    assert run(argv) == 1
    assert "ctx" not in use_fake_registry.manifests


def test_publish(
    tmpdir: py.path.local, use_fake_registry: Any, capsys: Any
) -> None:

    tmpdir.join("file.txt").write("data")
    argv = ["publish", "--directory", tmpdir.strpath, "--tag", TAG]

    assert run(argv) == 0
    out = capsys.readouterr().out
    assert out.startswith("localhost:5000/ctx@sha256:")
    assert "latest" in use_fake_registry.manifests["ctx"]

    # nothing changed, which is not an error
    assert run(argv) == 0
    assert capsys.readouterr().out == ""


def test_publish_from_environment(
    tmpdir: py.path.local, use_fake_registry: Any, monkeypatch: Any
) -> None:

    tmpdir.join("file.txt").write("data")
    monkeypatch.setenv("KONTEXT_DIRECTORY", tmpdir.strpath)
    monkeypatch.setenv("KONTEXT_TAG", TAG)

    assert run(["publish"]) == 0
    assert "latest" in use_fake_registry.manifests["ctx"]


def test_diff(tmpdir: py.path.local, use_fake_registry: Any, capsys: Any) -> None:

    tmpdir.join("file.txt").write("data")

    assert run(["diff", "--directory", tmpdir.strpath, "--tag", TAG]) == 0

    out = capsys.readouterr().out
    assert "added" in out
    assert "/var/run/kontext/file.txt" in out
    assert "ctx" not in use_fake_registry.manifests


def test_diff_after_publish(
    tmpdir: py.path.local, use_fake_registry: Any, capsys: Any
) -> None:

    tmpdir.join("same.txt").write("data")
    tmpdir.join("edit.txt").write("before")
    argv = ["--directory", tmpdir.strpath, "--tag", TAG]
    assert run(["publish"] + argv) == 0
    capsys.readouterr()

    assert run(["diff"] + argv) == 0
    assert capsys.readouterr().out == ""

    tmpdir.join("edit.txt").write("after")
    assert run(["diff"] + argv) == 0
    out = capsys.readouterr().out
    assert "changed" in out
    assert "edit.txt" in out
    assert "same.txt" not in out


def test_extract(tmpdir: py.path.local) -> None:

    tmpdir.join("source/file.txt").write("data", ensure=True)
    argv = [
        "extract",
        "--source",
        tmpdir.join("source").strpath,
        "--target",
        tmpdir.join("target").strpath,
    ]

    assert run(argv) == 0
    assert tmpdir.join("target/file.txt").read() == "data"
