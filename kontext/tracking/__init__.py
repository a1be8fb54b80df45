# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from ._entry import EntryKind, DirectoryEntry
from ._manifest import Manifest, normalize
from ._walk import walk_tree
from ._diff import Diff, DiffMode, DiffResult, compute_diff

__all__ = list(locals().keys())
