# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, Dict, Iterable, Iterator, List, Optional
import json
import posixpath

from .. import encoding

_ROOT = "."


def normalize(path: str) -> str:
    """Return the cleaned, relative form of path used for manifest keys.

    >>> normalize("./a//b/../c/")
    'a/c'
    """

    path = posixpath.normpath(path)
    if path.startswith("/"):
        path = path.lstrip("/") or _ROOT
    return path


class Manifest:
    """A bill of materials for the contents of a context directory.

    Each entry maps a relative path to its content identity, which
    is empty when the path is a directory.
    """

    __fields__ = ("_files",)

    def __init__(self, files: Dict[str, str] = None) -> None:

        self._files: Dict[str, str] = {}
        for path, digest in (files or {}).items():
            self.add(path, digest)

    def __repr__(self) -> str:
        return f"Manifest({len(self)} entries)"

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._files))

    def __contains__(self, path: Any) -> bool:
        if not isinstance(path, str):
            return False
        return self.has(path)

    def __eq__(self, other: Any) -> bool:

        if not isinstance(other, Manifest):
            return NotImplemented
        return self._files == other._files

    def is_empty(self) -> bool:
        """Return true if this manifest has no contents."""

        return len(self._files) == 0

    def has(self, path: str) -> bool:
        """Return true if the given path is recorded in this manifest."""

        return normalize(path) in self._files

    def get(self, path: str) -> Optional[str]:
        """Return the identity recorded for path, if any."""

        return self._files.get(normalize(path))

    def is_dir(self, path: str) -> bool:
        """Return true if path is recorded as a directory in this manifest."""

        return self.get(path) == encoding.EMPTY_IDENTITY

    def add(self, path: str, digest: str) -> None:
        """Record (or overwrite) the identity of the given path."""

        path = normalize(path)
        if path == _ROOT:
            raise ValueError("the context root cannot be a manifest entry")
        self._files[path] = digest

    def remove(self, path: str) -> None:
        """Remove path from this manifest, if present."""

        self._files.pop(normalize(path), None)

    def missing(self, paths: Iterable[str]) -> List[str]:
        """Return every recorded path that is not one of the given paths.

        The result is always sorted, regardless of the order in which
        entries were added.
        """

        have = set(normalize(p) for p in paths)
        return sorted(key for key in self._files if key not in have)

    def clone(self) -> "Manifest":
        """Return an independent copy of this manifest."""

        other = Manifest()
        other._files = dict(self._files)
        return other

    def to_dict(self) -> Dict[str, Any]:
        """Dump this manifest into a dictionary of python basic types."""

        if not self._files:
            return {}
        return {"files": dict(sorted(self._files.items()))}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Manifest":
        """Load a manifest from the given dictionary data.

        Raises:
            ValueError: if the data is not a valid manifest
        """

        if not isinstance(data, dict):
            raise ValueError(f"Invalid manifest: expected an object, got {data!r}")
        files = data.get("files") or {}
        if not isinstance(files, dict):
            raise ValueError("Invalid manifest: 'files' must be an object")

        manifest = Manifest()
        for path, digest in files.items():
            if not isinstance(digest, str) or not encoding.is_identity(digest):
                raise ValueError(f"Invalid manifest: bad identity for {path}")
            if normalize(path) == _ROOT:
                # older publishers recorded the context root itself
                continue
            manifest.add(path, digest)
        return manifest

    def encode(self) -> bytes:
        """Return the json representation of this manifest."""

        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":")
        ).encode("utf-8")

    @staticmethod
    def decode(data: bytes) -> "Manifest":
        """Read a manifest from its json representation.

        Raises:
            ValueError: if the data cannot be decoded
        """

        return Manifest.from_dict(json.loads(data.decode("utf-8")))
