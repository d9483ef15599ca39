"""Project, zone, region and network resolution.

Metadata-derived defaults are overridden field by field by explicit
configuration. The result is an immutable Topology computed once at
construction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from gcecloud.clients import compute_api_host
from gcecloud.config import DEFAULT_API_ENDPOINT, GCEConfig
from gcecloud.core.exceptions import ConfigError, TopologyError
from gcecloud.metadata import MetadataSource, network_project_and_name, project_and_zone
from gcecloud.observability.logger import logger

if TYPE_CHECKING:
    from gcecloud.manager import ServiceManager

log = logger.bind(component="topology")

# Each page holds up to 500 zones. The page count is capped in case the
# API keeps returning a next page token.
ZONES_PAGE_SIZE = 500
MAX_PAGES = 25


@dataclass(frozen=True, slots=True)
class Topology:
    """Where this adapter runs and which resources it spans.

    ``managed_zones`` is empty only between resolution and zone discovery
    of a multizone cluster.
    """

    project_id: str
    network_project_id: str
    region: str
    local_zone: str
    managed_zones: tuple[str, ...]
    network_url: str
    subnetwork_url: str
    on_shared_network: bool
    api_endpoint: str = ""

    @property
    def multizone(self) -> bool:
        return len(self.managed_zones) != 1


def is_project_number(id_or_number: str) -> bool:
    """Project ids cannot start with a digit, so a leading digit means a project number."""
    return bool(id_or_number) and id_or_number[0] in "0123456789"


def on_shared_network(project_id: str, network_project_id: str) -> bool:
    """Whether the cluster network lives in another project (shared VPC).

    Both ids must be of the same kind (both numbers or both names) before
    comparing values. A number and a name are never treated as different
    projects since they may alias the same one.
    """
    if is_project_number(project_id) != is_project_number(network_project_id):
        log.warning(
            "Project ids of different kinds, assuming not on a shared network: "
            "{project!r} vs {network_project!r}",
            project=project_id,
            network_project=network_project_id,
        )
        return False
    return project_id != network_project_id


def network_url(api_endpoint: str, project: str, network: str) -> str:
    endpoint = api_endpoint or DEFAULT_API_ENDPOINT
    return f"{endpoint}projects/{project}/global/networks/{network}"


def subnetwork_url(api_endpoint: str, project: str, region: str, subnetwork: str) -> str:
    endpoint = api_endpoint or DEFAULT_API_ENDPOINT
    return f"{endpoint}projects/{project}/regions/{region}/subnetworks/{subnetwork}"


def project_id_in_url(url: str) -> str:
    """Extract the project from full or short resource URLs.

    Both ``https://www.googleapis.com/compute/v1/projects/p/global/networks/n``
    and ``projects/p/global/networks/n`` yield ``p``.
    """
    parts = url.split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "projects":
            return parts[i + 1]
    raise ConfigError(f"could not find project field in url: {url}")


def last_component(url: str) -> str:
    return url.rsplit("/", 1)[-1]


def region_from_zone(zone: str) -> str:
    """'us-central1-a' -> 'us-central1'."""
    region, sep, _ = zone.rpartition("-")
    if not sep or not region:
        raise TopologyError(f"unexpected zone: {zone!r}")
    return region


def resolve_topology(config: GCEConfig, metadata: MetadataSource) -> Topology:
    """Combine instance metadata with configuration overrides.

    When ``config.multizone`` is set, ``managed_zones`` is left empty and
    must be filled by :func:`discover_zones`.
    """
    project_number, zone = project_and_zone(metadata)
    region = region_from_zone(zone)
    network_project_number, network_name = network_project_and_name(metadata)

    endpoint = config.api_endpoint
    if endpoint:
        compute_api_host(endpoint)
    project_id = config.project_id or project_number
    network_project_id = config.network_project_id or network_project_number

    if not config.network_name:
        net_url = network_url(endpoint, network_project_number, network_name)
    elif "/" in config.network_name:
        other_project = project_id_in_url(config.network_name)
        if other_project != network_project_id:
            log.warning(
                "Different network projects (may be id vs number): {a!r} and {b!r}",
                a=network_project_id,
                b=other_project,
            )
        net_url = config.network_name
    else:
        net_url = network_url(endpoint, network_project_id, config.network_name)

    if not config.subnetwork_name:
        subnet_url = ""
    elif "/" in config.subnetwork_name:
        subnet_url = config.subnetwork_name
    else:
        subnet_url = subnetwork_url(endpoint, network_project_id, region, config.subnetwork_name)

    topology = Topology(
        project_id=project_id,
        network_project_id=network_project_id,
        region=region,
        local_zone=zone,
        managed_zones=() if config.multizone else (zone,),
        network_url=net_url,
        subnetwork_url=subnet_url,
        on_shared_network=on_shared_network(project_id, network_project_id),
        api_endpoint=endpoint,
    )
    log.info(
        "Resolved topology: project={project} region={region} zone={zone} shared={shared}",
        project=project_id,
        region=region,
        zone=zone,
        shared=topology.on_shared_network,
    )
    return topology


async def discover_zones(
    manager: ServiceManager,
    project_id: str,
    region: str,
    *,
    max_pages: int = MAX_PAGES,
) -> tuple[str, ...]:
    """List every zone of ``region``, paging at most ``max_pages`` times.

    Filtering by region server-side is unreliable, so all zones are listed
    and matched on the last component of their region URL.
    """
    zones: list[str] = []
    page_token = ""

    for page in range(max_pages):
        result = await manager.list_zones(project_id, page_token)
        zones.extend(z.name for z in result.zones if last_component(z.region) == region)
        page_token = result.next_page_token
        if not page_token:
            break
        log.debug("Zone listing page {n} has more results", n=page + 1)
    else:
        log.warning(
            "Stopped listing zones after {n} pages, results may be incomplete",
            n=max_pages,
        )

    return tuple(zones)


async def complete_topology(topology: Topology, manager: ServiceManager) -> Topology:
    """Fill ``managed_zones`` for multizone clusters. A no-op otherwise."""
    if topology.managed_zones:
        return topology

    zones = await discover_zones(manager, topology.project_id, topology.region)
    if not zones:
        raise TopologyError(f"no zones found in region {topology.region}")

    log.info("Managing multiple zones: {zones}", zones=", ".join(zones))
    return replace(topology, managed_zones=zones)
