# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

"""Synthesis of the image layers that carry a context directory."""

from typing import BinaryIO, Optional
import io
import tarfile
import posixpath

import structlog

from .. import tracking

_LOGGER = structlog.get_logger("kontext.layers")

MOUNT_PATH = "/var/run/kontext"
MANIFEST_PATH = "/var/lib/kontext/manifest.json"
WHITEOUT_PREFIX = ".wh."

# Use a fixed mode so that layers are not sensitive to
# the umask under which the context was created.
_MODE = 0o555


def whiteout_path(path: str, mount_path: str = MOUNT_PATH) -> str:
    """Return the name of the marker that removes path from lower layers.

    >>> whiteout_path("dir/file.txt")
    '/var/run/kontext/dir/.wh.file.txt'
    """

    full_path = posixpath.normpath(posixpath.join(mount_path, path))
    dirname, basename = posixpath.split(full_path)
    return posixpath.join(dirname, WHITEOUT_PREFIX + basename)


def build_data_layer(diff: tracking.DiffResult, mount_path: str = MOUNT_PATH) -> bytes:
    """Create the tar payload for the files and removals of a diff.

    Included entries are written in the order that they were walked,
    followed by the whiteout markers for removed paths.

    Raises:
        OSError: if any of the included files cannot be read
    """

    buffer = io.BytesIO()
    with _open_writer(buffer) as tar:

        for entry in diff.included:
            name = posixpath.join(mount_path, entry.path)
            if entry.is_dir():
                tar.addfile(_new_info(name, tarfile.DIRTYPE))
                continue

            info = _new_info(name, tarfile.REGTYPE)
            info.size = entry.size
            with open(entry.source, "rb") as reader:
                tar.addfile(info, reader)

        for path in diff.whiteouts:
            tar.addfile(_new_info(whiteout_path(path, mount_path), tarfile.REGTYPE))

    _LOGGER.debug(
        "built data layer",
        entries=len(diff.included),
        whiteouts=len(diff.whiteouts),
        size=buffer.tell(),
    )
    return buffer.getvalue()


def build_manifest_layer(
    manifest: tracking.Manifest, manifest_path: str = MANIFEST_PATH
) -> bytes:
    """Create the tar payload holding a single encoded manifest.

    This is kept separate from the data layer so that it can be
    retrieved on its own during the next incremental publish.
    """

    data = manifest.encode()
    buffer = io.BytesIO()
    with _open_writer(buffer) as tar:
        info = _new_info(manifest_path, tarfile.REGTYPE)
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def read_manifest_layer(
    reader: BinaryIO, manifest_path: str = MANIFEST_PATH
) -> Optional[tracking.Manifest]:
    """Find and decode the manifest stored in the given layer stream.

    The stream may be compressed. Returns None if the layer does
    not contain a manifest.

    Raises:
        tarfile.TarError: if the stream is not a valid layer
        ValueError: if the stored manifest cannot be decoded
    """

    expected = tracking.normalize(manifest_path)
    with tarfile.open(fileobj=reader, mode="r|*") as tar:
        for info in tar:
            if tracking.normalize(info.name) != expected:
                continue
            if not info.isfile():
                raise ValueError(f"Invalid manifest entry: {info.name}")
            member = tar.extractfile(info)
            assert member is not None, "regular files are always extractable"
            return tracking.Manifest.decode(member.read())
    return None


def _open_writer(buffer: BinaryIO) -> tarfile.TarFile:

    return tarfile.open(fileobj=buffer, mode="w", format=tarfile.PAX_FORMAT)


def _new_info(name: str, kind: bytes) -> tarfile.TarInfo:

    info = tarfile.TarInfo(name)
    info.type = kind
    info.mode = _MODE
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info
