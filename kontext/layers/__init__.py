# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from ._layer import (
    MOUNT_PATH,
    MANIFEST_PATH,
    WHITEOUT_PREFIX,
    whiteout_path,
    build_data_layer,
    build_manifest_layer,
    read_manifest_layer,
)

__all__ = list(locals().keys())
