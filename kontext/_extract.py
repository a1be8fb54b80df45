# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import List, Tuple
import os
import stat
import shutil

import structlog

from . import layers
from ._config import WORKSPACE_PATH

_LOGGER = structlog.get_logger("kontext.extract")


def extract_context(
    source: str = layers.MOUNT_PATH, target: str = WORKSPACE_PATH
) -> int:
    """Copy a mounted context into the build workspace.

    Directories are created as needed, file modes are preserved
    and anything that is not a regular file or directory is skipped.

    Returns:
        int: the number of files that were copied
    """

    source = os.path.abspath(source)
    target = os.path.abspath(target)
    os.makedirs(target, exist_ok=True)

    count = 0
    # directory modes are applied once their contents are in place
    dir_modes: List[Tuple[str, int]] = []
    for dirpath, dirnames, filenames in os.walk(source, onerror=_raise):

        dirnames.sort()
        reldir = os.path.relpath(dirpath, source)
        target_dir = os.path.normpath(os.path.join(target, reldir))
        if reldir != os.curdir:
            os.makedirs(target_dir, exist_ok=True)
            dir_modes.append((target_dir, stat.S_IMODE(os.stat(dirpath).st_mode)))

        for name in sorted(filenames + _links(dirpath, dirnames)):
            path = os.path.join(dirpath, name)
            relpath = os.path.relpath(path, source)
            stat_result = os.lstat(path)
            if not stat.S_ISREG(stat_result.st_mode):
                _LOGGER.warning("skipping irregular file", path=relpath)
                continue
            dest = os.path.join(target_dir, name)
            _copy_file(path, dest, stat.S_IMODE(stat_result.st_mode))
            count += 1

    for path, mode in reversed(dir_modes):
        os.chmod(path, mode)

    _LOGGER.info("extracted context", files=count, target=target)
    return count


def _links(dirpath: str, dirnames: List[str]) -> List[str]:
    """Remove and return the directory names that are really symlinks."""

    links = [n for n in dirnames if os.path.islink(os.path.join(dirpath, n))]
    for name in links:
        dirnames.remove(name)
    return links


def _copy_file(src: str, dest: str, mode: int) -> None:

    with open(src, "rb") as reader:
        with open(dest, "wb") as writer:
            shutil.copyfileobj(reader, writer)
    os.chmod(dest, mode)


def _raise(err: OSError) -> None:
    raise err
