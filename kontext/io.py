# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Iterable
from colorama import Fore, Style

from . import layers, registry, tracking


def format_diffs(
    diffs: Iterable[tracking.Diff], mount_path: str = layers.MOUNT_PATH
) -> str:
    """Return a human readable string rendering of the given diffs."""

    outputs = []
    for diff in diffs:
        if diff.mode == tracking.DiffMode.added:
            color = Fore.GREEN
        elif diff.mode == tracking.DiffMode.removed:
            color = Fore.RED
        elif diff.mode == tracking.DiffMode.changed:
            color = Fore.LIGHTBLUE_EX
        else:
            color = Style.DIM
        path = mount_path.rstrip("/") + "/" + diff.path
        outputs.append(
            f"{color} {Style.BRIGHT}{diff.mode.name:>8} {Style.NORMAL}{path}{Style.RESET_ALL}"
        )

    return "\n".join(outputs)


def format_changes(
    diffs: Iterable[tracking.Diff], mount_path: str = layers.MOUNT_PATH
) -> str:
    """Return a string rendering of any given diffs which represent change."""

    diffs = filter(lambda x: x.mode is not tracking.DiffMode.unchanged, diffs)
    return format_diffs(diffs, mount_path)


def format_size(size: float) -> str:
    """Return a human-readable file size in bytes."""
    for unit in ["B", "Ki", "Mi", "Gi", "Ti"]:
        if abs(size) < 1024.0:
            return f"{size:3.1f} {unit}"
        size /= 1024.0
    return f"{size:3.1f} Pi"


def format_error(err: Exception) -> str:
    """Return a one-line, colored description of the given error."""

    msg = str(err) or type(err).__name__
    if isinstance(err, registry.RegistryError) and err.status:
        msg += f" {Style.DIM}[{err.status}]{Style.RESET_ALL}"
    if isinstance(err, FileNotFoundError) and err.filename:
        msg = f"{err.strerror}: {err.filename}"
    return f"{Fore.RED}{msg}{Fore.RESET}"
