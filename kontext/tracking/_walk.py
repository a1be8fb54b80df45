# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Callable, FrozenSet, Iterator, Tuple
import os
import stat
import errno
import posixpath

from .. import encoding
from ._entry import DirectoryEntry, EntryKind

FileHasher = Callable[[str], str]
_NodeId = Tuple[int, int]


def walk_tree(
    root: str, hasher: FileHasher = encoding.digest_file
) -> Iterator[DirectoryEntry]:
    """Walk the contents of a directory depth-first.

    Entries are produced lazily, sorted by name within each
    directory, and with paths relative to the given root. The root
    itself is never produced. Symbolic links are followed and
    reported as whatever they point to.

    Raises:
        NotADirectoryError: if root is not a directory
        OSError: if any part of the tree cannot be read
        ValueError: if a special file (socket, device, etc) is found
    """

    root = os.path.abspath(root)
    stat_result = os.stat(root)
    if not stat.S_ISDIR(stat_result.st_mode):
        raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), root)
    ancestors = frozenset([_node_id(stat_result)])
    return _walk_dir(root, "", hasher, ancestors)


def _walk_dir(
    dirname: str, reldir: str, hasher: FileHasher, ancestors: FrozenSet[_NodeId]
) -> Iterator[DirectoryEntry]:

    for name in sorted(os.listdir(dirname)):

        path = os.path.join(dirname, name)
        relpath = posixpath.join(reldir, name) if reldir else name
        # chase symlinks
        stat_result = os.stat(path)

        if stat.S_ISDIR(stat_result.st_mode):
            node = _node_id(stat_result)
            if node in ancestors:
                raise OSError(errno.ELOOP, os.strerror(errno.ELOOP), path)
            yield DirectoryEntry(
                relpath, EntryKind.TREE, 0, encoding.EMPTY_IDENTITY, path
            )
            for entry in _walk_dir(path, relpath, hasher, ancestors | {node}):
                yield entry

        elif stat.S_ISREG(stat_result.st_mode):
            yield DirectoryEntry(
                relpath, EntryKind.BLOB, stat_result.st_size, hasher(path), path
            )

        else:
            raise ValueError("unsupported special file: " + path)


def _node_id(stat_result: os.stat_result) -> _NodeId:
    return (stat_result.st_dev, stat_result.st_ino)
