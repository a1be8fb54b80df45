# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import NamedTuple, Optional
import re

from ._errors import InvalidReferenceError

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_DOCKER_HUB_ALIASES = ("docker.io", "registry-1.docker.io", DEFAULT_REGISTRY)
_REPOSITORY_RE = re.compile(
    r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$"
)
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^sha256:[a-f0-9]{64}$")


class Reference(NamedTuple):
    """Identifies an image within a registry, by tag or by digest."""

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.digest:
            return f"{name}@{self.digest}"
        return f"{name}:{self.tag or DEFAULT_TAG}"

    @property
    def identifier(self) -> str:
        """The tag or digest used to address a manifest."""
        return self.digest or self.tag or DEFAULT_TAG

    def with_digest(self, digest: str) -> "Reference":
        return Reference(self.registry, self.repository, None, digest)


def parse_reference(text: str) -> Reference:
    """Parse an image reference in the form [registry/]repository[:tag|@digest].

    References without a registry point at docker hub, and single
    component docker hub repositories are assumed to be official images.

    >>> str(parse_reference("ubuntu"))
    'index.docker.io/library/ubuntu:latest'
    >>> str(parse_reference("localhost:5000/team/ctx:v1"))
    'localhost:5000/team/ctx:v1'

    Raises:
        InvalidReferenceError: if the reference is not valid
    """

    original = text
    text = (text or "").strip()
    if not text:
        raise InvalidReferenceError("Image reference must not be empty")

    digest = None
    if "@" in text:
        text, digest = text.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise InvalidReferenceError(f"Invalid digest in reference: {original}")

    tag = None
    name = text
    slash = text.rfind("/")
    colon = text.rfind(":")
    if colon > slash:
        name, tag = text[:colon], text[colon + 1 :]
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(f"Invalid tag in reference: {original}")

    registry = DEFAULT_REGISTRY
    parts = name.split("/", 1)
    if len(parts) == 2 and _looks_like_registry(parts[0]):
        registry, name = parts
    if registry in _DOCKER_HUB_ALIASES:
        registry = DEFAULT_REGISTRY
        if "/" not in name:
            name = "library/" + name

    if not _REPOSITORY_RE.match(name):
        raise InvalidReferenceError(f"Invalid repository in reference: {original}")

    if tag is None and digest is None:
        tag = DEFAULT_TAG
    return Reference(registry, name, tag, digest)


def parse_tag(text: str) -> Reference:
    """Parse an image reference that must be addressable by tag.

    Raises:
        InvalidReferenceError: if the reference is not valid or uses a digest
    """

    ref = parse_reference(text)
    if ref.digest is not None:
        raise InvalidReferenceError(f"Expected a tag, not a digest: {text}")
    return ref


def _looks_like_registry(component: str) -> bool:

    return "." in component or ":" in component or component == "localhost"
