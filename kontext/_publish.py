# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import NamedTuple
import os

import structlog

from . import layers, registry, tracking
from ._config import Config, get_config
from ._resolve import BaseImage, find_base_image

_LOGGER = structlog.get_logger("kontext.publish")


class UsageError(ValueError):
    """Denotes a missing or malformed input from the user."""

    pass


class NothingToPublishError(ValueError):
    """Denotes that the context is unchanged since it was last published."""

    def __init__(self, message: str) -> None:
        super(NothingToPublishError, self).__init__("Nothing to publish, " + message)


class ContextLayers(NamedTuple):
    """The result of diffing a context directory against its base."""

    base: BaseImage
    diff: tracking.DiffResult
    data_layer: bytes
    manifest_layer: bytes


def parse_target(tag: str) -> registry.Reference:
    """Parse the reference that a context will be published to.

    Raises:
        UsageError: if the reference is missing or invalid
    """

    if not tag:
        raise UsageError("Missing required flag: --tag")
    try:
        return registry.parse_tag(tag)
    except registry.InvalidReferenceError as e:
        raise UsageError(f"Invalid tag {tag!r}: {e}")


def check_directory(directory: str) -> str:
    """Validate the context directory, returning its absolute path.

    Raises:
        UsageError: if the directory is missing or not a directory
    """

    if not directory:
        raise UsageError("Missing required flag: --directory")
    if not os.path.isdir(directory):
        raise UsageError(f"Not a directory: {directory}")
    return os.path.abspath(directory)


def build_context(
    directory: str,
    base: BaseImage,
    compare_digests: bool = True,
    config: Config = None,
) -> ContextLayers:
    """Compute the layers needed to bring base up to date with directory.

    Raises:
        NothingToPublishError: if nothing changed since the base was published
        OSError: if the directory cannot be read
    """

    if config is None:
        config = get_config()

    diff = tracking.compute_diff(directory, base.manifest, compare_digests)
    _LOGGER.info(
        "computed context diff",
        included=len(diff.included),
        removed=len(diff.removed),
        whiteouts=len(diff.whiteouts),
    )
    if diff.is_empty():
        raise NothingToPublishError("no change in source context (or empty)")

    data_layer = layers.build_data_layer(diff, config.mount_path)
    manifest_layer = layers.build_manifest_layer(diff.manifest, config.manifest_path)
    return ContextLayers(base, diff, data_layer, manifest_layer)


def publish_context(
    directory: str,
    tag: str,
    client: registry.Client = None,
    compare_digests: bool = True,
    config: Config = None,
) -> registry.Image:
    """Publish the contents of directory as an image under tag.

    When the tag already holds a previously published context, only
    the changes since then are pushed, as a new pair of layers.

    Raises:
        UsageError: if the directory or tag are invalid
        NothingToPublishError: if nothing changed since the last publish
        registry.RegistryError: if the image cannot be pushed
    """

    if config is None:
        config = get_config()
    directory = check_directory(directory)
    target = parse_target(tag)
    if client is None:
        client = config.get_client()

    base = find_base_image(target, client, config)
    context = build_context(directory, base, compare_digests, config)

    image = registry.append_layers(
        base.image, context.data_layer, context.manifest_layer
    )
    digest = client.push(target, image)
    _LOGGER.info("published", ref=str(target), digest=digest)
    return image
