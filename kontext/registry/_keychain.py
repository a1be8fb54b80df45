# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, Dict, NamedTuple, Optional
import os
import json
import base64
import subprocess

import structlog
from typing_extensions import Protocol

from ._reference import DEFAULT_REGISTRY

_LOGGER = structlog.get_logger("kontext.registry")
_DOCKER_HUB_KEYS = ("https://index.docker.io/v1/", "index.docker.io", "docker.io")


class Credentials(NamedTuple):

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***)"


class Keychain(Protocol):
    """A source of credentials for image registries."""

    def resolve(self, registry: str) -> Optional[Credentials]:
        """Return the credentials for the named registry, if any are known."""
        ...


class AnonymousKeychain:
    """A keychain that never provides any credentials."""

    def resolve(self, registry: str) -> Optional[Credentials]:
        return None


class StaticKeychain:
    """A keychain holding a fixed set of credentials, by registry."""

    def __init__(self, credentials: Dict[str, Credentials] = None) -> None:
        self._credentials = dict(credentials or {})

    def resolve(self, registry: str) -> Optional[Credentials]:
        return self._credentials.get(registry)


class DockerKeychain:
    """Reads credentials the way the docker cli stores them.

    Both inline credentials ('auths') and external credential
    helpers ('credHelpers' and 'credsStore') are supported.
    """

    def __init__(self, config_dir: str) -> None:

        self.config_file = os.path.join(config_dir, "config.json")

    def __repr__(self) -> str:
        return f"DockerKeychain('{self.config_file}')"

    def resolve(self, registry: str) -> Optional[Credentials]:

        config = self._load()
        helper = config.get("credHelpers", {}).get(registry)
        if helper is None:
            helper = config.get("credsStore")
        if helper:
            creds = _run_credential_helper(helper, _server_url(registry))
            if creds is not None:
                return creds

        for key, value in config.get("auths", {}).items():
            if _normalize_server(key) == registry and isinstance(value, dict):
                return _decode_auth(value)
        return None

    def _load(self) -> Dict[str, Any]:

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as e:
            _LOGGER.warning("ignoring invalid docker config", path=self.config_file)
            _LOGGER.warning(" > " + str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return data


def _normalize_server(server: str) -> str:

    if server in _DOCKER_HUB_KEYS:
        return DEFAULT_REGISTRY
    for scheme in ("https://", "http://"):
        if server.startswith(scheme):
            server = server[len(scheme) :]
    server = server.split("/", 1)[0]
    if server in _DOCKER_HUB_KEYS:
        return DEFAULT_REGISTRY
    return server


def _server_url(registry: str) -> str:

    if registry == DEFAULT_REGISTRY:
        return _DOCKER_HUB_KEYS[0]
    return registry


def _decode_auth(value: Dict[str, Any]) -> Optional[Credentials]:

    auth = value.get("auth")
    if auth:
        try:
            decoded = base64.b64decode(auth).decode("utf-8")
        except ValueError:
            _LOGGER.warning("ignoring undecodable docker credentials")
            return None
        username, _, password = decoded.partition(":")
        return Credentials(username, password)

    username = value.get("username")
    password = value.get("password")
    if username and password:
        return Credentials(username, password)
    return None


def _run_credential_helper(helper: str, server: str) -> Optional[Credentials]:

    cmd = [f"docker-credential-{helper}", "get"]
    try:
        proc = subprocess.run(
            cmd,
            input=server.encode("utf-8"),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as e:
        _LOGGER.warning("failed to run credential helper", helper=helper, error=str(e))
        return None

    if proc.returncode != 0:
        _LOGGER.debug("no credentials from helper", helper=helper, server=server)
        return None
    try:
        data = json.loads(proc.stdout.decode("utf-8"))
        return Credentials(data["Username"], data["Secret"])
    except (ValueError, KeyError, TypeError):
        _LOGGER.warning("invalid output from credential helper", helper=helper)
        return None
