"""Deployment manifest loading.

A manifest is a YAML document describing a container app in the shape of
the ARM request body. It is kept as an untyped mapping so that payloads
for newer api-versions than the SDK models know about survive intact.

The top-level ``api-version`` key is reserved: when present it selects the
api-version used on the wire and is removed from the request body.

SECURITY: Manifest size is bounded before parsing.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml
from azure.core.exceptions import DeserializationError
from azure.mgmt.appcontainers.models import ContainerApp

from .config import MAX_MANIFEST_SIZE_BYTES
from .errors import ManifestError

logger = logging.getLogger(__name__)

API_VERSION_KEY = "api-version"

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps date-like scalars as strings.

    Manifests carry api-versions such as 2024-03-01 unquoted, and the JSON
    request body has no date type.
    """


ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class Manifest(Mapping[str, Any]):
    """Ordered, read-only view of a parsed manifest document."""

    def __init__(self, document: dict[str, Any]) -> None:
        self._document = document

    @classmethod
    def parse(cls, data: bytes | str, max_size: int = MAX_MANIFEST_SIZE_BYTES) -> Manifest:
        """Parse manifest bytes.

        Raises:
            ManifestError: If the document is too large, is not valid YAML,
                or is not a mapping at the top level.
        """
        if len(data) > max_size:
            raise ManifestError(f"Manifest exceeds maximum size of {max_size} bytes")

        try:
            document = yaml.load(data, Loader=ManifestLoader)
        except yaml.YAMLError as e:
            raise ManifestError(f"decoding yaml: {e}") from e

        if not isinstance(document, dict):
            raise ManifestError("Manifest must contain a YAML mapping")

        non_string_keys = [k for k in document if not isinstance(k, str)]
        if non_string_keys:
            raise ManifestError(f"Manifest keys must be strings: {non_string_keys}")

        return cls(document)

    def __getitem__(self, key: str) -> Any:
        return self._document[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._document)

    def __len__(self) -> int:
        return len(self._document)

    @property
    def api_version(self) -> str | None:
        """The pinned api-version, or None when the manifest does not set one.

        Raises:
            ManifestError: If the key is present but not a string.
        """
        value = self._document.get(API_VERSION_KEY)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ManifestError(
                f"'{API_VERSION_KEY}' must be a string, got {type(value).__name__}: {value!r}"
            )
        return value

    def without_api_version(self) -> Manifest:
        """Copy of the manifest with the reserved key removed."""
        return Manifest({k: v for k, v in self._document.items() if k != API_VERSION_KEY})

    def to_dict(self) -> dict[str, Any]:
        return dict(self._document)

    def to_json_bytes(self) -> bytes:
        """Serialize the document as a JSON request body.

        Raises:
            ManifestError: If a value has no JSON representation.
        """
        try:
            return json.dumps(self._document).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ManifestError(f"encoding manifest as json: {e}") from e

    def to_container_app(self) -> ContainerApp:
        """Deserialize into the SDK's ContainerApp model (REST key names)."""
        # Round-trip through JSON so YAML-only types are rejected the same
        # way as on the api-version override path.
        body = json.loads(self.to_json_bytes())
        try:
            return ContainerApp.deserialize(body)
        except (DeserializationError, AttributeError, TypeError, ValueError) as e:
            raise ManifestError(f"converting to container app type: {e}") from e


def load_manifest(path: Path, max_size: int = MAX_MANIFEST_SIZE_BYTES) -> bytes:
    """Read manifest bytes from disk with a size check.

    Raises:
        ManifestError: If the file is missing, unreadable or too large.
    """
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > max_size:
        raise ManifestError(f"Manifest file exceeds maximum size of {max_size} bytes: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ManifestError(f"Failed to read manifest file {path}: {e}") from e

    logger.info("Loaded manifest from %s", path, extra={"size_bytes": len(data)})
    return data
