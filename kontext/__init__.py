# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk
"""Publish a local build context to a container registry, incrementally."""

__version__ = "0.1.0"

from . import encoding, tracking, layers, registry, io
from ._config import get_config, load_config, Config, WORKSPACE_PATH
from ._resolve import (
    find_base_image,
    clean_slate,
    read_embedded_manifest,
    BaseImage,
    BaseState,
    ManifestNotFoundError,
)
from ._publish import (
    publish_context,
    build_context,
    parse_target,
    check_directory,
    ContextLayers,
    UsageError,
    NothingToPublishError,
)
from ._extract import extract_context

__all__ = list(locals().keys())
