# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

"""Access to remote image registries."""

from ._errors import (
    InvalidReferenceError,
    RegistryError,
    ImageNotFoundError,
    AuthenticationError,
)
from ._reference import (
    Reference,
    parse_reference,
    parse_tag,
    DEFAULT_REGISTRY,
    DEFAULT_TAG,
)
from ._keychain import (
    Credentials,
    Keychain,
    AnonymousKeychain,
    StaticKeychain,
    DockerKeychain,
)
from ._image import (
    Image,
    Layer,
    append_layers,
    compute_digest,
    DOCKER_MANIFEST,
    DOCKER_MANIFEST_LIST,
    DOCKER_CONFIG,
    DOCKER_LAYER,
    OCI_MANIFEST,
    OCI_INDEX,
    OCI_CONFIG,
    OCI_LAYER,
    OCI_LAYER_UNCOMPRESSED,
)
from ._client import Client, parse_challenge

__all__ = list(locals().keys())
