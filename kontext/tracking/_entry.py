# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import NamedTuple
import enum

from .. import encoding


class EntryKind(enum.Enum):

    TREE = "tree"  # directory / node
    BLOB = "file"  # file / leaf


class DirectoryEntry(NamedTuple):
    """A single file or directory found while walking a context directory."""

    path: str
    kind: EntryKind
    size: int = 0
    digest: str = encoding.EMPTY_IDENTITY
    source: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value} {self.path}"

    def is_dir(self) -> bool:
        return self.kind is EntryKind.TREE
