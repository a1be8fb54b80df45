# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, BinaryIO, Dict, Iterable, Optional, Tuple, Union
import io
import re
import gzip
import base64
import hashlib
import tempfile
import contextlib
from urllib.parse import urljoin, quote

import requests
import structlog

from ._errors import RegistryError, ImageNotFoundError, AuthenticationError
from ._image import Image, Layer, MANIFEST_TYPES, INDEX_TYPES
from ._keychain import Keychain, AnonymousKeychain, Credentials
from ._reference import Reference

_LOGGER = structlog.get_logger("kontext.registry")
_CHUNK_SIZE = 64 * 1024
_SPOOL_SIZE = 16 * 1024 * 1024
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^,\s]*))')
_LOCAL_HOSTS = ("localhost", "127.0.0.1")

_Data = Union[bytes, BinaryIO]


def parse_challenge(header: str) -> Tuple[str, Dict[str, str]]:
    """Parse a WWW-Authenticate header into its scheme and parameters.

    >>> parse_challenge('Bearer realm="https://auth.io/token",service="reg"')
    ('bearer', {'realm': 'https://auth.io/token', 'service': 'reg'})
    """

    header = (header or "").strip()
    if not header:
        return "", {}
    scheme, _, rest = header.partition(" ")
    params = {}
    for match in _CHALLENGE_PARAM_RE.finditer(rest):
        key, quoted, bare = match.groups()
        params[key.lower()] = quoted if quoted is not None else bare
    return scheme.lower(), params


class Client:
    """A minimal client for the docker registry http api (v2).

    Only the operations needed to read an image and push
    new layers on top of it are supported.
    """

    def __init__(
        self,
        keychain: Keychain = None,
        session: requests.Session = None,
        timeout: float = 60.0,
        insecure: Iterable[str] = (),
        platform: str = "linux/amd64",
    ) -> None:

        self._keychain = keychain if keychain is not None else AnonymousKeychain()
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout
        self._insecure = set(insecure)
        self._platform = platform
        self._auth: Dict[Tuple[str, str, str], str] = {}

    def resolve(self, ref: Reference) -> Image:
        """Load the manifest and configuration of an image.

        Manifest lists are resolved to the image for the
        configured platform.

        Raises:
            ImageNotFoundError: if the reference does not exist
            RegistryError: if the image cannot be loaded
        """

        accept = ", ".join(MANIFEST_TYPES + INDEX_TYPES)
        url = self._url(ref, "manifests", ref.identifier)
        resp = self._request("GET", ref, url, headers={"Accept": accept})
        if resp.status_code == 404:
            raise ImageNotFoundError(ref)
        _check(resp, f"fetch manifest for {ref}")

        try:
            manifest = resp.json()
        except ValueError as e:
            raise RegistryError(f"Invalid manifest for {ref}: {e}")
        if not isinstance(manifest, dict):
            raise RegistryError(f"Invalid manifest for {ref}")

        content_type = resp.headers.get("Content-Type", "").split(";")[0].strip()
        media_type = manifest.get("mediaType") or content_type
        if media_type in INDEX_TYPES or "manifests" in manifest:
            digest = self._select_platform(ref, manifest)
            _LOGGER.debug("selected platform", ref=str(ref), digest=digest)
            return self.resolve(ref.with_digest(digest))

        if manifest.get("schemaVersion") != 2 or "config" not in manifest:
            raise RegistryError(f"Unsupported manifest format for {ref}")
        if media_type in MANIFEST_TYPES:
            manifest.setdefault("mediaType", media_type)

        config_data = self.read_blob(ref, manifest["config"]["digest"])
        return Image(manifest, config_data, source=ref)

    def has_blob(self, ref: Reference, digest: str) -> bool:
        """Return true if the identified blob exists in the repository."""

        url = self._url(ref, "blobs", digest)
        resp = self._request("HEAD", ref, url, actions="pull,push")
        if resp.status_code == 404:
            return False
        _check(resp, f"check for blob {digest}")
        return True

    def read_blob(self, ref: Reference, digest: str) -> bytes:
        """Read an entire blob into memory, verifying its digest."""

        with self.open_blob(ref, digest) as reader:
            return reader.read()

    def open_blob(self, ref: Reference, digest: str) -> BinaryIO:
        """Download a blob, returning a readable handle to its contents.

        Raises:
            RegistryError: if the blob does not exist or does not
                match the expected digest
        """

        url = self._url(ref, "blobs", digest)
        resp = self._request("GET", ref, url, stream=True)
        with contextlib.closing(resp):
            _check(resp, f"fetch blob {digest} from {ref}")
            spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_SIZE)
            hasher = hashlib.sha256()
            try:
                for chunk in resp.iter_content(_CHUNK_SIZE):
                    hasher.update(chunk)
                    spool.write(chunk)
            except requests.RequestException as e:
                spool.close()
                raise RegistryError(f"Failed to download {digest}: {e}")

        actual = "sha256:" + hasher.hexdigest()
        if actual != digest:
            spool.close()
            raise RegistryError(f"Digest mismatch for blob {digest}: got {actual}")
        spool.seek(0)
        return spool  # type: ignore

    def uncompressed_content(self, image: Image, layer: Layer) -> BinaryIO:
        """Return a readable stream of the uncompressed tar data of a layer."""

        if layer.data is not None:
            reader: BinaryIO = io.BytesIO(layer.data)
        elif image.source is None:
            raise RegistryError(f"No source known for layer {layer.digest}")
        else:
            reader = self.open_blob(image.source, layer.digest)

        if layer.media_type.endswith("zstd"):
            reader.close()
            raise RegistryError(f"Unsupported layer compression: {layer.media_type}")
        if layer.is_compressed():
            return _GzipReader(fileobj=reader, mode="rb")  # type: ignore
        return reader

    def push(self, ref: Reference, image: Image) -> str:
        """Publish the given image under ref.

        All blobs are uploaded before the manifest, so that the
        tag is only ever updated to point at a complete image.

        Returns:
            str: the digest of the pushed manifest
        """

        for layer in image.layers:
            self._ensure_blob(ref, image, layer)

        if not self.has_blob(ref, image.config_digest):
            self._upload_blob(ref, image.config_digest, image.config_data)

        url = self._url(ref, "manifests", ref.identifier)
        resp = self._request(
            "PUT",
            ref,
            url,
            actions="pull,push",
            headers={"Content-Type": image.media_type},
            data=image.manifest_data(),
        )
        _check(resp, f"push manifest to {ref}")
        digest = resp.headers.get("Docker-Content-Digest") or image.digest()
        _LOGGER.debug("pushed manifest", ref=str(ref), digest=digest)
        return digest

    def _ensure_blob(self, ref: Reference, image: Image, layer: Layer) -> None:

        if self.has_blob(ref, layer.digest):
            _LOGGER.debug("layer already exists", digest=layer.digest)
            return

        if layer.data is not None:
            self._upload_blob(ref, layer.digest, layer.data)
            return

        source = image.source
        if source is None:
            raise RegistryError(f"No source known for layer {layer.digest}")
        location = None
        if source.registry == ref.registry:
            mounted, location = self._mount_blob(ref, source, layer)
            if mounted:
                return

        _LOGGER.info("copying layer", digest=layer.digest, source=str(source))
        with self.open_blob(source, layer.digest) as reader:
            self._upload_blob(ref, layer.digest, reader, location)

    def _mount_blob(
        self, ref: Reference, source: Reference, layer: Layer
    ) -> Tuple[bool, Optional[str]]:
        """Ask the registry to share a blob from another of its repositories.

        Returns:
            bool: true if the blob was mounted into ref
            Optional[str]: the upload session that the registry opened
                instead of mounting, if any
        """

        url = self._url(ref, "blobs", "uploads/")
        params = {"mount": layer.digest, "from": source.repository}
        resp = self._request("POST", ref, url, actions="pull,push", params=params)
        if resp.status_code == 201:
            _LOGGER.debug("mounted layer", digest=layer.digest, source=str(source))
            return True, None
        location = resp.headers.get("Location")
        if resp.status_code == 202 and location:
            return False, urljoin(url, location)
        return False, None

    def _upload_blob(
        self, ref: Reference, digest: str, data: _Data, location: str = None
    ) -> None:

        if location is None:
            location = self._start_upload(ref)
        separator = "&" if "?" in location else "?"
        location = f"{location}{separator}digest={quote(digest)}"
        resp = self._request(
            "PUT",
            ref,
            location,
            actions="pull,push",
            headers={"Content-Type": "application/octet-stream"},
            data=data,
        )
        _check(resp, f"upload blob {digest} to {ref}")
        _LOGGER.debug("uploaded blob", digest=digest)

    def _start_upload(self, ref: Reference) -> str:

        url = self._url(ref, "blobs", "uploads/")
        resp = self._request("POST", ref, url, actions="pull,push")
        _check(resp, f"start upload to {ref}")
        location = resp.headers.get("Location")
        if not location:
            raise RegistryError(f"No upload location given by {ref.registry}")
        return urljoin(url, location)

    def _select_platform(self, ref: Reference, index: Dict[str, Any]) -> str:

        os_name, _, rest = self._platform.partition("/")
        arch, _, variant = rest.partition("/")
        for desc in index.get("manifests", []):
            platform = desc.get("platform", {})
            if platform.get("os") != os_name:
                continue
            if platform.get("architecture") != arch:
                continue
            if variant and platform.get("variant") != variant:
                continue
            return desc["digest"]
        raise RegistryError(f"No image for platform {self._platform} in {ref}")

    def _url(self, ref: Reference, kind: str, identifier: str) -> str:

        host = ref.registry.split(":", 1)[0]
        scheme = "https"
        if ref.registry in self._insecure or host in self._insecure:
            scheme = "http"
        elif host in _LOCAL_HOSTS:
            scheme = "http"
        return f"{scheme}://{ref.registry}/v2/{ref.repository}/{kind}/{identifier}"

    def _request(
        self,
        method: str,
        ref: Reference,
        url: str,
        actions: str = "pull",
        headers: Dict[str, str] = None,
        **kwargs: Any,
    ) -> requests.Response:

        headers = dict(headers or {})
        key = (ref.registry, ref.repository, actions)
        if key in self._auth:
            headers["Authorization"] = self._auth[key]

        resp = self._send(method, url, headers, **kwargs)
        if resp.status_code != 401:
            return resp
        resp.close()

        challenge = resp.headers.get("WWW-Authenticate", "")
        authorization = self._authenticate(ref, challenge, actions)
        if authorization is None:
            raise AuthenticationError(f"Unauthorized: {method} {url}", 401)
        self._auth[key] = authorization
        headers["Authorization"] = authorization

        data = kwargs.get("data")
        if hasattr(data, "seek"):
            data.seek(0)  # type: ignore
        resp = self._send(method, url, headers, **kwargs)
        if resp.status_code == 401:
            resp.close()
            raise AuthenticationError(f"Unauthorized: {method} {url}", 401)
        return resp

    def _send(
        self, method: str, url: str, headers: Dict[str, str], **kwargs: Any
    ) -> requests.Response:

        _LOGGER.debug("request", method=method, url=url)
        try:
            return self._session.request(
                method, url, headers=headers, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            raise RegistryError(f"{method} {url} failed: {e}")

    def _authenticate(
        self, ref: Reference, challenge: str, actions: str
    ) -> Optional[str]:

        scheme, params = parse_challenge(challenge)
        creds = self._keychain.resolve(ref.registry)

        if scheme == "basic":
            if creds is None:
                return None
            return _basic_auth(creds)

        if scheme != "bearer" or "realm" not in params:
            return None

        query = {"scope": f"repository:{ref.repository}:{actions}"}
        if "service" in params:
            query["service"] = params["service"]
        headers = {}
        if creds is not None:
            headers["Authorization"] = _basic_auth(creds)

        resp = self._send("GET", params["realm"], headers, params=query)
        if resp.status_code != 200:
            raise AuthenticationError(
                f"Failed to get token from {params['realm']}: {resp.status_code}",
                resp.status_code,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise AuthenticationError(f"Invalid token response: {e}")
        token = body.get("token") or body.get("access_token")
        if not token:
            raise AuthenticationError(f"No token given by {params['realm']}")
        return f"Bearer {token}"


def _basic_auth(creds: Credentials) -> str:

    raw = f"{creds.username}:{creds.password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def _check(resp: requests.Response, action: str) -> None:

    if 200 <= resp.status_code < 300:
        return
    detail = resp.text[:200] if resp.text else resp.reason
    raise RegistryError(
        f"Failed to {action}: {resp.status_code} {detail}", resp.status_code
    )


class _GzipReader(gzip.GzipFile):
    """Decompresses a blob, closing the blob along with itself."""

    def close(self) -> None:

        source = self.fileobj
        try:
            super(_GzipReader, self).close()
        finally:
            if source is not None:
                source.close()
