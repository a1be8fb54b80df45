# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk


class InvalidReferenceError(ValueError):
    """Denotes an image reference that could not be parsed."""

    pass


class RegistryError(RuntimeError):
    """Denotes a failure while talking to an image registry."""

    def __init__(self, message: str, status: int = None) -> None:
        super(RegistryError, self).__init__(message)
        self.status = status


class ImageNotFoundError(RegistryError):
    """Denotes a reference that does not exist in the registry."""

    def __init__(self, ref: object) -> None:
        super(ImageNotFoundError, self).__init__(f"Image not found: {ref}", 404)


class AuthenticationError(RegistryError):
    """Denotes that the registry refused our credentials (or lack thereof)."""

    pass
