# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, BinaryIO
import os
import stat
import string
import hashlib

_CHUNK_SIZE = 64 * 1024

# directories are tracked by presence only
EMPTY_IDENTITY = ""


class Hasher:
    """Hasher is the hashing algorithm used for content identities.

    All components are expected to use this
    implementation for consistency.
    """

    __fields__ = ("_sha",)

    def __init__(self, data: bytes = b"") -> None:

        self._sha = hashlib.sha256(data)

    def __getattr__(self, name: str) -> Any:

        return getattr(self._sha, name)

    def digest(self) -> str:
        """Return the current content identity as computed by this hasher."""

        return self._sha.hexdigest()


DIGEST_SIZE = Hasher().digest_size
EMPTY_DIGEST = Hasher().digest()


def digest_stream(reader: BinaryIO) -> str:
    """Consume the given stream, returning the identity of its contents."""

    hasher = Hasher()
    for chunk in iter(lambda: reader.read(_CHUNK_SIZE), b""):
        hasher.update(chunk)
    return hasher.digest()


def digest_file(path: str) -> str:
    """Return the content identity of the file at path.

    The file is read in chunks and never loaded into memory as a whole.

    Raises:
        OSError: if the file cannot be opened or read
    """

    with open(path, "rb") as f:
        return digest_stream(f)


def compute_identity(path: str, stat_result: os.stat_result = None) -> str:
    """Return the content identity for a directory or file.

    Directories carry no content, and always have the empty identity.
    """

    if stat_result is None:
        stat_result = os.stat(path)
    if stat.S_ISDIR(stat_result.st_mode):
        return EMPTY_IDENTITY
    return digest_file(path)


def is_identity(value: str) -> bool:
    """Return true if the given string is a valid content identity."""

    if value == EMPTY_IDENTITY:
        return True
    if len(value) != DIGEST_SIZE * 2:
        return False
    return all(c in string.hexdigits for c in value)
