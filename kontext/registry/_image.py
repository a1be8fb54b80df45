# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any, Dict, List, NamedTuple, Optional
import copy
import gzip
import json
import hashlib

from ._reference import Reference

DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_CONFIG = "application/vnd.docker.container.image.v1+json"
DOCKER_LAYER = "application/vnd.docker.image.rootfs.diff.tar.gzip"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
OCI_CONFIG = "application/vnd.oci.image.config.v1+json"
OCI_LAYER = "application/vnd.oci.image.layer.v1.tar+gzip"
OCI_LAYER_UNCOMPRESSED = "application/vnd.oci.image.layer.v1.tar"

MANIFEST_TYPES = (DOCKER_MANIFEST, OCI_MANIFEST)
INDEX_TYPES = (DOCKER_MANIFEST_LIST, OCI_INDEX)


def compute_digest(data: bytes) -> str:
    """Return the registry digest of the given blob."""

    return "sha256:" + hashlib.sha256(data).hexdigest()


class Layer(NamedTuple):
    """A single filesystem layer of an image.

    Layers of remote images only carry a descriptor, while layers
    appended locally also hold their compressed payload in 'data'.
    """

    digest: str
    size: int
    media_type: str
    data: Optional[bytes] = None

    def is_compressed(self) -> bool:
        return self.media_type.endswith("gzip") or self.media_type.endswith("zstd")

    def descriptor(self) -> Dict[str, Any]:
        return {"mediaType": self.media_type, "size": self.size, "digest": self.digest}


class Image:
    """An image manifest, along with its configuration and layers.

    Attributes:
        source: the reference that this image was loaded from, which
            is where any remote blobs are to be found
    """

    def __init__(
        self,
        manifest: Dict[str, Any],
        config_data: bytes,
        source: Optional[Reference] = None,
    ) -> None:

        self.manifest = manifest
        self.config_data = config_data
        self.source = source
        self.layers: List[Layer] = [
            Layer(d["digest"], d["size"], d.get("mediaType", DOCKER_LAYER))
            for d in manifest.get("layers", [])
        ]

    def __repr__(self) -> str:
        return f"Image({self.source}, layers={len(self.layers)})"

    @property
    def media_type(self) -> str:
        return self.manifest.get("mediaType", DOCKER_MANIFEST)

    @property
    def config(self) -> Dict[str, Any]:
        return json.loads(self.config_data.decode("utf-8"))

    @property
    def config_digest(self) -> str:
        return self.manifest["config"]["digest"]

    def manifest_data(self) -> bytes:
        """Return the encoded manifest, as it would be pushed."""

        return json.dumps(self.manifest, separators=(",", ":")).encode("utf-8")

    def digest(self) -> str:
        return compute_digest(self.manifest_data())


def append_layers(image: Image, *payloads: bytes, created_by: str = "kontext") -> Image:
    """Create a new image, adding the given uncompressed layer payloads.

    Payloads are compressed deterministically so that the same
    inputs always produce the same layer digests.
    """

    manifest = copy.deepcopy(image.manifest)
    config = image.config
    oci = image.media_type == OCI_MANIFEST
    new_layers: List[Layer] = []

    rootfs = config.setdefault("rootfs", {"type": "layers", "diff_ids": []})
    history = config.get("history")
    for payload in payloads:
        compressed = gzip.compress(payload, mtime=0)
        layer = Layer(
            digest=compute_digest(compressed),
            size=len(compressed),
            media_type=OCI_LAYER if oci else DOCKER_LAYER,
            data=compressed,
        )
        new_layers.append(layer)
        rootfs.setdefault("diff_ids", []).append(compute_digest(payload))
        if history is not None:
            history.append({"created_by": created_by})

    config_data = json.dumps(config, sort_keys=True, separators=(",", ":")).encode(
        "utf-8"
    )
    manifest.setdefault("schemaVersion", 2)
    manifest.setdefault("mediaType", OCI_MANIFEST if oci else DOCKER_MANIFEST)
    manifest["config"] = {
        "mediaType": manifest.get("config", {}).get(
            "mediaType", OCI_CONFIG if oci else DOCKER_CONFIG
        ),
        "size": len(config_data),
        "digest": compute_digest(config_data),
    }
    manifest["layers"] = [layer.descriptor() for layer in image.layers + new_layers]

    result = Image(manifest, config_data, image.source)
    # keep the payloads of any previously appended layers
    result.layers = image.layers + new_layers
    return result
