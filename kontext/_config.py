# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Dict, List, Optional, Tuple
import os
import errno
import configparser

import structlog

from . import layers, registry

DEFAULT_BASE_IMAGE = (
    "gcr.io/mattmoor-public/github.com/mattmoor/kontext/cmd/extractor:latest"
)
WORKSPACE_PATH = "/workspace"

_DEFAULTS = {
    "kontext": {
        "default_base": DEFAULT_BASE_IMAGE,
        "mount_path": layers.MOUNT_PATH,
        "manifest_path": layers.MANIFEST_PATH,
        "workspace": WORKSPACE_PATH,
    },
    "registry": {
        "timeout": "60",
        "insecure": "",
        "platform": "linux/amd64",
        "docker_config": "",
    },
    "sentry": {"dsn": "", "environment": "production"},
}
_ENVIRONMENT: Dict[str, Tuple[str, str]] = {
    "KONTEXT_DEFAULT_BASE": ("kontext", "default_base"),
    "KONTEXT_INSECURE_REGISTRIES": ("registry", "insecure"),
    "KONTEXT_PLATFORM": ("registry", "platform"),
    "KONTEXT_SENTRY_DSN": ("sentry", "dsn"),
    "SENTRY_ENVIRONMENT": ("sentry", "environment"),
}
_CONFIG: Optional["Config"] = None
_LOGGER = structlog.get_logger("kontext.config")


class Config(configparser.ConfigParser):
    """The settings that drive a publish, and where its collaborators come from."""

    def __init__(self) -> None:
        super(Config, self).__init__(interpolation=None)
        self.read_dict(_DEFAULTS)

    @property
    def default_base(self) -> str:
        """Return the image reference used when no prior publish can be found."""
        return str(self["kontext"]["default_base"])

    @property
    def mount_path(self) -> str:
        return str(self["kontext"]["mount_path"])

    @property
    def manifest_path(self) -> str:
        return str(self["kontext"]["manifest_path"])

    @property
    def workspace(self) -> str:
        return str(self["kontext"]["workspace"])

    @property
    def registry_timeout(self) -> float:
        return self.getfloat("registry", "timeout")

    @property
    def insecure_registries(self) -> List[str]:
        """List the registries that are reached over plain http."""

        value = self["registry"]["insecure"]
        return [r.strip() for r in value.split(",") if r.strip()]

    @property
    def platform(self) -> str:
        return str(self["registry"]["platform"])

    @property
    def docker_config_dir(self) -> str:

        configured = self["registry"]["docker_config"]
        if configured:
            return os.path.expanduser(configured)
        return os.getenv("DOCKER_CONFIG") or os.path.expanduser("~/.docker")

    @property
    def sentry_dsn(self) -> str:
        return str(self["sentry"]["dsn"])

    @property
    def sentry_environment(self) -> str:
        return str(self["sentry"]["environment"])

    def read_environment(self, environ: Dict[str, str] = None) -> None:
        """Override any loaded values with those set in the environment."""

        if environ is None:
            environ = dict(os.environ)
        for var, (section, option) in _ENVIRONMENT.items():
            if var in environ:
                self[section][option] = environ[var]

    def get_keychain(self) -> registry.Keychain:
        """Get the source of registry credentials, as configured."""

        return registry.DockerKeychain(self.docker_config_dir)

    def get_client(self) -> registry.Client:
        """Get a registry client, as configured."""

        return registry.Client(
            keychain=self.get_keychain(),
            timeout=self.registry_timeout,
            insecure=self.insecure_registries,
            platform=self.platform,
        )


def get_config() -> Config:
    """Get the current configuration, loading it if necessary."""

    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def load_config() -> Config:
    """Load the kontext configuration from disk.

    This includes the default, system and user configurations, if they
    exist, followed by any overrides from the environment.
    """

    user_config = os.path.expanduser("~/.config/kontext/kontext.conf")
    system_config = "/etc/kontext.conf"

    config = Config()
    for filename in (system_config, user_config):
        try:
            with open(filename, "r", encoding="utf-8") as f:
                config.read_file(f, source=filename)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise
        else:
            _LOGGER.debug("loaded config", path=filename)

    config.read_environment()
    return config
