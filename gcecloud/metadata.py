"""Instance metadata server access.

Only works when running on a Compute Engine instance. Failures are
surfaced as TopologyError and never retried: an unreachable metadata
server means the adapter is not running in the target environment.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx

from gcecloud.core.exceptions import TopologyError
from gcecloud.observability.logger import logger

log = logger.bind(component="metadata")

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}

ZONE_PATH = "instance/zone"
NUMERIC_PROJECT_PATH = "project/numeric-project-id"
NETWORK_PATH = "instance/network-interfaces/0/network"


@runtime_checkable
class MetadataSource(Protocol):
    def get(self, path: str) -> str: ...


class MetadataClient:
    """Key-value queries against the metadata server."""

    def __init__(
        self,
        base_url: str = METADATA_URL,
        *,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            headers=METADATA_HEADERS,
            timeout=timeout,
            transport=transport,
        )

    def get(self, path: str) -> str:
        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error("Metadata query {path} failed: {err}", path=path, err=e)
            raise TopologyError(f"metadata server unreachable for {path}: {e}") from e
        return response.text.strip()

    def close(self) -> None:
        self._client.close()


def project_and_zone(metadata: MetadataSource) -> tuple[str, str]:
    """Return the numeric project id and the zone this instance runs in."""
    zone = metadata.get(ZONE_PATH).rsplit("/", 1)[-1]
    project_number = metadata.get(NUMERIC_PROJECT_PATH)
    if not zone or not project_number:
        raise TopologyError(
            f"unexpected metadata response: zone={zone!r} project={project_number!r}"
        )
    return project_number, zone


def network_project_and_name(metadata: MetadataSource) -> tuple[str, str]:
    """Parse ``projects/<project>/networks/<name>`` from the first interface."""
    result = metadata.get(NETWORK_PATH)
    parts = result.split("/")
    if len(parts) != 4:
        raise TopologyError(f"unexpected metadata response: {result}")
    return parts[1], parts[3]
