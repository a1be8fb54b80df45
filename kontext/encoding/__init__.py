# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from ._hash import (
    Hasher,
    DIGEST_SIZE,
    EMPTY_DIGEST,
    EMPTY_IDENTITY,
    digest_file,
    digest_stream,
    compute_identity,
    is_identity,
)

__all__ = list(locals().keys())
