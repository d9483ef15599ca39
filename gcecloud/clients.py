"""Vendor API handles, built once per credential.

Compute v1 uses the google-cloud-compute clients. The beta compute API
has no generated client library, so it goes through the discovery-based
google-api-python-client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from google.auth.credentials import Credentials

from gcecloud.core.exceptions import ConfigError
from gcecloud.observability.logger import logger

log = logger.bind(component="clients")

COMPUTE_API_PATH = "/compute/v1/"


@dataclass(frozen=True, slots=True)
class ComputeClients:
    disks: Any
    zones: Any
    zone_operations: Any
    region_operations: Any
    global_operations: Any


@dataclass(frozen=True, slots=True)
class VendorClients:
    """Thin typed handles sharing one credential, read-only."""

    compute: ComputeClients
    compute_beta: Any
    container: Any
    kms: Any


def compute_api_host(api_endpoint: str) -> str:
    """'https://host/compute/v1/' -> 'https://host'.

    The generated compute clients put `/compute/v1/` in every request path
    and only take a scheme and host, so any other path cannot be honored.
    """
    parts = urlsplit(api_endpoint)
    if not parts.scheme or not parts.netloc:
        raise ConfigError(f"api-endpoint must be an absolute URL, got {api_endpoint!r}")
    if parts.path.rstrip("/") != COMPUTE_API_PATH.rstrip("/"):
        raise ConfigError(
            f"api-endpoint path must be {COMPUTE_API_PATH!r}, got {parts.path!r} in {api_endpoint!r}"
        )
    return f"{parts.scheme}://{parts.netloc}"


def build_clients(credentials: Credentials, api_endpoint: str = "") -> VendorClients:
    from google.api_core.client_options import ClientOptions
    from google.cloud import compute_v1, container_v1, kms_v1  # type: ignore[reportMissingImports]
    from googleapiclient import discovery

    options = ClientOptions(api_endpoint=compute_api_host(api_endpoint)) if api_endpoint else None

    def compute_client(cls: Any) -> Any:
        return cls(credentials=credentials, client_options=options)

    compute = ComputeClients(
        disks=compute_client(compute_v1.DisksClient),
        zones=compute_client(compute_v1.ZonesClient),
        zone_operations=compute_client(compute_v1.ZoneOperationsClient),
        region_operations=compute_client(compute_v1.RegionOperationsClient),
        global_operations=compute_client(compute_v1.GlobalOperationsClient),
    )
    if api_endpoint:
        log.info("Using compute API endpoint {endpoint}", endpoint=api_endpoint)

    return VendorClients(
        compute=compute,
        compute_beta=discovery.build(
            "compute", "beta", credentials=credentials, cache_discovery=False,
        ),
        container=container_v1.ClusterManagerClient(credentials=credentials),
        kms=kms_v1.KeyManagementServiceClient(credentials=credentials),
    )
