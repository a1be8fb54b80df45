# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Iterable, List, NamedTuple
import enum
import posixpath

import structlog

from ._entry import DirectoryEntry
from ._manifest import Manifest
from ._walk import FileHasher, walk_tree
from .. import encoding

_LOGGER = structlog.get_logger("kontext.tracking")


class DiffMode(enum.Enum):

    unchanged = "="
    changed = "~"
    added = "+"
    removed = "-"


class Diff(NamedTuple):

    mode: DiffMode
    path: str

    def __str__(self) -> str:
        return f"{self.mode.value} {self.path}"


class DiffResult:
    """The changes needed to bring a published context up to date.

    Attributes:
        included: walked entries that are new or changed, in walk order
        removed: every baseline path that no longer exists, sorted
        whiteouts: the removed paths that need an explicit removal marker
        manifest: the updated manifest, describing the new state
        diffs: one entry per walked or removed path, including unchanged ones
    """

    def __init__(self, manifest: Manifest) -> None:

        self.manifest = manifest
        self.included: List[DirectoryEntry] = []
        self.removed: List[str] = []
        self.whiteouts: List[str] = []
        self.diffs: List[Diff] = []

    def __repr__(self) -> str:
        return (
            f"DiffResult(included={len(self.included)}, "
            f"removed={len(self.removed)}, whiteouts={len(self.whiteouts)})"
        )

    @property
    def count(self) -> int:
        """The number of changed entries, zero meaning nothing to publish."""
        return len(self.included) + len(self.removed)

    def is_empty(self) -> bool:
        return self.count == 0

    def iter_diffs(self) -> Iterable[Diff]:
        return iter(self.diffs)


def compute_diff(
    root: str,
    baseline: Manifest,
    compare_digests: bool = True,
    hasher: FileHasher = encoding.digest_file,
) -> DiffResult:
    """Compare the contents of root with a previously published manifest.

    The given baseline is not modified, the updated manifest is
    returned as part of the result.

    Args:
        root: the context directory to walk
        baseline: the manifest of the previously published state
        compare_digests: when false, any path already present in the
            baseline is assumed to be unchanged, and only added or
            removed paths are detected
        hasher: the function used to compute file identities
    """

    manifest = baseline.clone()
    result = DiffResult(manifest)

    seen: List[str] = []
    for entry in walk_tree(root, hasher=hasher):

        # regardless of whether it is added, it's part of the context
        seen.append(entry.path)

        previous = manifest.get(entry.path)
        if previous is not None:
            if not compare_digests or previous == entry.digest:
                result.diffs.append(Diff(DiffMode.unchanged, entry.path))
                continue
            _LOGGER.debug("changed", path=entry.path)
            result.diffs.append(Diff(DiffMode.changed, entry.path))
        else:
            _LOGGER.debug("added", path=entry.path)
            result.diffs.append(Diff(DiffMode.added, entry.path))

        manifest.add(entry.path, entry.digest)
        result.included.append(entry)

    for path in manifest.missing(seen):
        _LOGGER.debug("removed", path=path)
        manifest.remove(path)
        result.removed.append(path)
        result.diffs.append(Diff(DiffMode.removed, path))

    for path in result.removed:
        # the removal of a directory implies the removal of its contents
        parent = posixpath.dirname(path)
        if not parent or manifest.is_dir(parent):
            result.whiteouts.append(path)

    return result
