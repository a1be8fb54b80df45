# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, Dict, List
import io
import gzip
import tarfile

import py.path
import pytest

from . import registry, tracking
from ._config import Config
from ._publish import (
    NothingToPublishError,
    UsageError,
    publish_context,
)

TAG = "localhost:5000/ctx:latest"


def _pushed_layers(fake_registry: Any) -> List[Dict[str, tarfile.TarInfo]]:

    manifest = fake_registry.get_manifest("ctx", "latest")
    result = []
    for desc in manifest["layers"]:
        blob = gzip.decompress(fake_registry.get_blob("ctx", desc["digest"]))
        with tarfile.open(fileobj=io.BytesIO(blob)) as tar:
            result.append({info.name: info for info in tar.getmembers()})
    return result


def _pushed_manifest(fake_registry: Any) -> tracking.Manifest:

    manifest = fake_registry.get_manifest("ctx", "latest")
    blob = fake_registry.get_blob("ctx", manifest["layers"][-1]["digest"])
    with tarfile.open(fileobj=io.BytesIO(gzip.decompress(blob))) as tar:
        reader = tar.extractfile("/var/lib/kontext/manifest.json")
        assert reader is not None
        return tracking.Manifest.decode(reader.read())


def test_publish_context(
    tmpdir: py.path.local, fake_registry: Any, client: registry.Client
) -> None:

    tmpdir.join("src/a.txt").write("hello", ensure=True)
    tmpdir.join("src/dir/b.txt").write("world", ensure=True)

    image = publish_context(tmpdir.join("src").strpath, TAG, client=client)

    assert fake_registry.get_manifest("ctx", "latest") == image.manifest
    data, meta = _pushed_layers(fake_registry)
    assert sorted(data) == [
        "/var/run/kontext/a.txt",
        "/var/run/kontext/dir",
        "/var/run/kontext/dir/b.txt",
    ]
    assert list(meta) == ["/var/lib/kontext/manifest.json"]
    assert sorted(_pushed_manifest(fake_registry)) == ["a.txt", "dir", "dir/b.txt"]


def test_publish_context_unchanged(
    tmpdir: py.path.local, fake_registry: Any, client: registry.Client
) -> None:

    tmpdir.join("a.txt").write("hello")
    publish_context(tmpdir.strpath, TAG, client=client)
    before = fake_registry.get_manifest("ctx", "latest")

    with pytest.raises(NothingToPublishError):
        publish_context(tmpdir.strpath, TAG, client=client)

    assert fake_registry.get_manifest("ctx", "latest") == before


def test_publish_context_empty_directory(
    tmpdir: py.path.local, fake_registry: Any, client: registry.Client
) -> None:

    with pytest.raises(NothingToPublishError):
        publish_context(tmpdir.strpath, TAG, client=client)

    assert "ctx" not in fake_registry.manifests


def test_publish_context_incremental(
    tmpdir: py.path.local, fake_registry: Any, client: registry.Client
) -> None:

    tmpdir.join("keep.txt").write("same")
    tmpdir.join("edit.txt").write("before")
    tmpdir.join("gone/deep/file.txt").write("bye", ensure=True)
    publish_context(tmpdir.strpath, TAG, client=client)

    tmpdir.join("edit.txt").write("after")
    tmpdir.join("gone").remove(rec=1)
    tmpdir.join("new.txt").write("hi")
    publish_context(tmpdir.strpath, TAG, client=client)

    pushed = _pushed_layers(fake_registry)
    assert len(pushed) == 4
    data = pushed[2]
    assert sorted(data) == [
        "/var/run/kontext/.wh.gone",
        "/var/run/kontext/edit.txt",
        "/var/run/kontext/new.txt",
    ]
    assert sorted(_pushed_manifest(fake_registry)) == [
        "edit.txt",
        "keep.txt",
        "new.txt",
    ]


def test_publish_context_without_rehash(
    tmpdir: py.path.local, fake_registry: Any, client: registry.Client
) -> None:

    tmpdir.join("edit.txt").write("before")
    publish_context(tmpdir.strpath, TAG, client=client)
    tmpdir.join("edit.txt").write("after")

    with pytest.raises(NothingToPublishError):
        publish_context(tmpdir.strpath, TAG, client=client, compare_digests=False)

    publish_context(tmpdir.strpath, TAG, client=client)
    assert len(_pushed_layers(fake_registry)) == 4


@pytest.mark.parametrize(
    "directory,tag",
    [
        ("", TAG),
        ("{tmpdir}", ""),
        ("{tmpdir}/missing", TAG),
        ("{tmpdir}", "Not A Valid Reference"),
        ("{tmpdir}", "localhost:5000/ctx@sha256:" + "a" * 64),
    ],
)
def test_publish_context_usage_errors(
    tmpdir: py.path.local, client: registry.Client, directory: str, tag: str
) -> None:

    with pytest.raises(UsageError):
        publish_context(directory.format(tmpdir=tmpdir.strpath), tag, client=client)


def test_publish_context_default_client(
    tmpdir: py.path.local, config: Config, monkeypatch: Any, fake_registry: Any
) -> None:

    tmpdir.join("file").write("data")
    monkeypatch.setattr(
        Config, "get_client", lambda self: registry.Client(session=fake_registry)
    )

    publish_context(tmpdir.strpath, TAG)

    assert "latest" in fake_registry.manifests["ctx"]
