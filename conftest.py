# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, Dict, List, Optional, Tuple
import io
import gzip
import json
import uuid
import hashlib
import logging
from urllib.parse import urlsplit, parse_qsl

import py.path
import pytest
import requests
import structlog
from requests.structures import CaseInsensitiveDict

import kontext

logging.getLogger("").setLevel(logging.DEBUG)
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
)

TEST_REGISTRY = "localhost:5000"
TOKEN_REALM = "https://auth.example.com/token"


def _digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


class FakeRegistry:
    """An in-memory docker registry, usable in place of a requests session.

    Attributes:
        requests: every (method, path) requested so far
        token: when set, all registry requests must carry this
            bearer token, which is handed out by the token realm
        allow_mounts: when false, cross-repository mounts open an
            upload session instead, as registries are allowed to do
    """

    def __init__(self) -> None:

        self.blobs: Dict[str, Dict[str, bytes]] = {}
        self.manifests: Dict[str, Dict[str, Tuple[bytes, str]]] = {}
        self.uploads: Dict[str, str] = {}
        self.requests: List[Tuple[str, str]] = []
        self.token: Optional[str] = None
        self.token_requests: List[Dict[str, str]] = []
        self.allow_mounts = True

    def add_blob(self, repository: str, data: bytes) -> str:

        digest = _digest(data)
        self.blobs.setdefault(repository, {})[digest] = data
        return digest

    def add_manifest(
        self, repository: str, tag: str, manifest: Dict[str, Any], media_type: str
    ) -> str:

        data = json.dumps(manifest).encode("utf-8")
        digest = _digest(data)
        tags = self.manifests.setdefault(repository, {})
        tags[tag] = tags[digest] = (data, media_type)
        return digest

    def add_image(
        self,
        repository: str,
        tag: str = "latest",
        layers: List[bytes] = None,
        history: bool = True,
    ) -> str:
        """Store an image built from the given uncompressed layer tarballs."""

        layers = list(layers or [])
        compressed = [gzip.compress(layer, mtime=0) for layer in layers]
        config: Dict[str, Any] = {
            "architecture": "amd64",
            "os": "linux",
            "rootfs": {
                "type": "layers",
                "diff_ids": [_digest(layer) for layer in layers],
            },
        }
        if history:
            config["history"] = [{"created_by": "test"} for _ in layers]
        config_data = json.dumps(config).encode("utf-8")
        manifest = {
            "schemaVersion": 2,
            "mediaType": kontext.registry.DOCKER_MANIFEST,
            "config": {
                "mediaType": kontext.registry.DOCKER_CONFIG,
                "size": len(config_data),
                "digest": self.add_blob(repository, config_data),
            },
            "layers": [
                {
                    "mediaType": kontext.registry.DOCKER_LAYER,
                    "size": len(blob),
                    "digest": self.add_blob(repository, blob),
                }
                for blob in compressed
            ],
        }
        return self.add_manifest(
            repository, tag, manifest, kontext.registry.DOCKER_MANIFEST
        )

    def get_manifest(self, repository: str, tag: str) -> Dict[str, Any]:

        data, _ = self.manifests[repository][tag]
        return json.loads(data.decode("utf-8"))

    def get_blob(self, repository: str, digest: str) -> bytes:

        return self.blobs[repository][digest]

    def request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str] = None,
        params: Dict[str, str] = None,
        data: Any = None,
        timeout: float = None,
        stream: bool = False,
    ) -> requests.Response:

        headers = dict(headers or {})
        parts = urlsplit(url)
        query = dict(parse_qsl(parts.query))
        query.update(params or {})
        self.requests.append((method, parts.path))

        if url.split("?", 1)[0] == TOKEN_REALM:
            self.token_requests.append(query)
            return _response(200, json.dumps({"token": self.token}).encode())

        if self.token is not None:
            if headers.get("Authorization") != f"Bearer {self.token}":
                challenge = f'Bearer realm="{TOKEN_REALM}",service="fake-registry"'
                return _response(401, b"", {"WWW-Authenticate": challenge})

        path = parts.path
        if not path.startswith("/v2/"):
            return _response(404)
        path = path[len("/v2/") :]
        for kind in ("/manifests/", "/blobs/uploads/", "/blobs/"):
            if kind in path:
                repository, _, rest = path.partition(kind)
                break
        else:
            return _response(404)

        if isinstance(data, (bytes, type(None))):
            body = data or b""
        else:
            body = data.read()

        if kind == "/manifests/":
            return self._handle_manifest(method, repository, rest, headers, body)
        if kind == "/blobs/":
            return self._handle_blob(method, repository, rest)
        return self._handle_upload(method, repository, rest, query, body)

    def _handle_manifest(
        self,
        method: str,
        repository: str,
        ref: str,
        headers: Dict[str, str],
        body: bytes,
    ) -> requests.Response:

        if method == "PUT":
            content_type = headers.get("Content-Type", "")
            digest = _digest(body)
            tags = self.manifests.setdefault(repository, {})
            tags[ref] = tags[digest] = (body, content_type)
            return _response(201, b"", {"Docker-Content-Digest": digest})

        found = self.manifests.get(repository, {}).get(ref)
        if found is None:
            return _response(404, b'{"errors":[{"code":"MANIFEST_UNKNOWN"}]}')
        data, media_type = found
        return _response(
            200,
            data if method == "GET" else b"",
            {"Content-Type": media_type, "Docker-Content-Digest": _digest(data)},
        )

    def _handle_blob(
        self, method: str, repository: str, digest: str
    ) -> requests.Response:

        data = self.blobs.get(repository, {}).get(digest)
        if data is None:
            return _response(404)
        return _response(200, data if method == "GET" else b"")

    def _handle_upload(
        self,
        method: str,
        repository: str,
        upload: str,
        query: Dict[str, str],
        body: bytes,
    ) -> requests.Response:

        if method == "POST":
            mount, source = query.get("mount"), query.get("from")
            if self.allow_mounts and mount and mount in self.blobs.get(source, {}):
                blob = self.blobs[source][mount]
                self.blobs.setdefault(repository, {})[mount] = blob
                return _response(201)
            upload_id = str(uuid.uuid4())
            self.uploads[upload_id] = repository
            location = f"/v2/{repository}/blobs/uploads/{upload_id}"
            return _response(202, b"", {"Location": location})

        if method == "PUT" and self.uploads.pop(upload, None) == repository:
            digest = query.get("digest", "")
            if _digest(body) != digest:
                return _response(400, b'{"errors":[{"code":"DIGEST_INVALID"}]}')
            self.blobs.setdefault(repository, {})[digest] = body
            return _response(201, b"", {"Docker-Content-Digest": digest})
        return _response(404)


def _response(
    status: int, body: bytes = b"", headers: Dict[str, str] = None
) -> requests.Response:

    resp = requests.Response()
    resp.status_code = status
    resp.reason = "fake"
    resp.encoding = "utf-8"
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.raw = io.BytesIO(body)
    resp._content = body
    resp._content_consumed = True
    return resp


@pytest.fixture(autouse=True)
def config(tmpdir: py.path.local, monkeypatch: Any) -> kontext.Config:

    for var in ("KONTEXT_DIRECTORY", "KONTEXT_TAG", "KONTEXT_VERBOSITY"):
        monkeypatch.delenv(var, raising=False)
    config = kontext.Config()
    config["kontext"]["default_base"] = f"{TEST_REGISTRY}/base:latest"
    config["kontext"]["workspace"] = tmpdir.join("workspace").strpath
    config["registry"]["docker_config"] = tmpdir.join("docker").strpath
    monkeypatch.setattr(kontext._config, "_CONFIG", config)
    return config


@pytest.fixture
def fake_registry() -> FakeRegistry:

    registry = FakeRegistry()
    registry.add_image("base", "latest", [])
    return registry


@pytest.fixture
def client(fake_registry: FakeRegistry) -> kontext.registry.Client:

    return kontext.registry.Client(session=fake_registry)  # type: ignore
