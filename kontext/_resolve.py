# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import NamedTuple
import zlib
import enum
import tarfile
import contextlib

import structlog

from . import layers, registry, tracking
from ._config import Config, get_config

_LOGGER = structlog.get_logger("kontext.resolve")


class ManifestNotFoundError(ValueError):
    """Denotes an image that does not carry a context manifest."""

    pass


class BaseState(enum.Enum):

    RESOLVED = "resolved"
    CLEAN_SLATE = "clean-slate"


class BaseImage(NamedTuple):
    """The image to build upon, and the manifest of what it already holds."""

    image: registry.Image
    manifest: tracking.Manifest
    state: BaseState


def find_base_image(
    target: registry.Reference, client: registry.Client, config: Config = None
) -> BaseImage:
    """Identify the image to append a new context layer onto.

    If the target already exists and carries a manifest in its
    topmost layer, then it is used as the base along with that
    manifest. Otherwise the configured default base image is used,
    with an empty manifest. Failing to resolve the target is never
    fatal, but failing to resolve the default base is.

    Raises:
        registry.RegistryError: if the default base image cannot be loaded
    """

    if config is None:
        config = get_config()

    try:
        image = client.resolve(target)
        manifest = read_embedded_manifest(client, image, config.manifest_path)
    except (
        registry.RegistryError,
        tarfile.TarError,
        zlib.error,
        EOFError,
        OSError,
        ValueError,
    ) as e:
        _LOGGER.warning("falling back on a clean slate", ref=str(target), error=str(e))
        return clean_slate(client, config)

    _LOGGER.info("found previous context", ref=str(target), entries=len(manifest))
    return BaseImage(image, manifest, BaseState.RESOLVED)


def clean_slate(client: registry.Client, config: Config = None) -> BaseImage:
    """Load the default base image, with an empty manifest."""

    if config is None:
        config = get_config()
    ref = registry.parse_reference(config.default_base)
    _LOGGER.debug("loading default base image", ref=str(ref))
    image = client.resolve(ref)
    return BaseImage(image, tracking.Manifest(), BaseState.CLEAN_SLATE)


def read_embedded_manifest(
    client: registry.Client,
    image: registry.Image,
    manifest_path: str = layers.MANIFEST_PATH,
) -> tracking.Manifest:
    """Read the context manifest stored in the topmost layer of an image.

    Raises:
        ManifestNotFoundError: if the image has no manifest layer
    """

    if not image.layers:
        raise ManifestNotFoundError(f"Image has no layers: {image.source}")

    top = image.layers[-1]
    with contextlib.closing(client.uncompressed_content(image, top)) as reader:
        manifest = layers.read_manifest_layer(reader, manifest_path)
    if manifest is None:
        raise ManifestNotFoundError(f"Unable to find manifest in {image.source}")
    return manifest
