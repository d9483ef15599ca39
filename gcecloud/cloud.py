"""GCECloud: the Compute Engine adapter facade.

Construction resolves topology, bootstraps the credential, builds the
vendor clients, wraps them in a ServiceManager, discovers zones for
multizone clusters, and creates the shared rate limiter and resource
lock. Any failure aborts construction; there is no degraded adapter.

Example:
    async with await GCECloud.create(load_config("/etc/gce.conf")) as cloud:
        disk = await cloud.create_disk(DiskSpec(name="data", size_gb=100))
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from google.auth.credentials import Credentials

from gcecloud.clients import VendorClients, build_clients
from gcecloud.config import GCEConfig
from gcecloud.credentials import bootstrap_credentials, credentials_from_config
from gcecloud.locking import SharedResourceLock
from gcecloud.manager import Disk, DiskSpec, GCEServiceManager, ServiceManager
from gcecloud.metadata import MetadataClient, MetadataSource
from gcecloud.observability.logger import logger
from gcecloud.operations import OperationHandle, OperationPoller, PollContext, PollResult
from gcecloud.throttle import TokenBucket
from gcecloud.topology import Topology, complete_topology, resolve_topology

log = logger.bind(component="cloud")

PROVIDER_NAME = "gce"

# Compute Engine injects more DNS search paths than resolvers allow;
# these per-project ones are known to be useless.
_USELESS_DNS_SEARCH = re.compile(r"^[0-9]+(\.[0-9]+)*\.google\.internal\.$")

type ManagerFactory = Callable[[GCECloud], ServiceManager]
type ClientsFactory = Callable[[Credentials, str], VendorClients | None]


@dataclass(frozen=True, slots=True)
class Zone:
    failure_domain: str
    region: str


def scrub_dns(
    nameservers: Sequence[str], searches: Sequence[str],
) -> tuple[list[str], list[str]]:
    """Drop known-useless search paths. Nameservers pass through unchanged."""
    return list(nameservers), [s for s in searches if not _USELESS_DNS_SEARCH.match(s)]


class GCECloud:
    """Aggregates topology, clients, manager, poller, limiter and lock.

    Topology accessors are fixed at construction. The rate limiter and
    the shared resource lock are the only mutable shared state, and both
    belong to this instance.
    """

    def __init__(
        self,
        topology: Topology,
        *,
        config: GCEConfig,
        clients: VendorClients | None,
        credentials: Credentials | None,
        thread_pool: ThreadPoolExecutor,
        manager_factory: ManagerFactory = GCEServiceManager,
    ) -> None:
        self._topology = topology
        self._config = config
        self._clients = clients
        self._credentials = credentials
        self._pool = thread_pool
        self._limiter = TokenBucket(qps=config.poll_qps, burst=config.poll_burst)
        self._poller = OperationPoller(self._limiter, interval=config.poll_interval)
        self._shared_lock = SharedResourceLock()
        self._manager = manager_factory(self)

    @classmethod
    async def create(
        cls,
        config: GCEConfig | None = None,
        *,
        metadata: MetadataSource | None = None,
        credentials: Credentials | None = None,
        clients_factory: ClientsFactory = build_clients,
        manager_factory: ManagerFactory = GCEServiceManager,
    ) -> GCECloud:
        """Build an adapter for the instance this process runs on.

        Raises:
            TopologyError: Metadata unreachable or malformed.
            CredentialError: No token within the bootstrap deadline.
            ConfigError: Inconsistent configuration.
        """
        config = config or GCEConfig()
        log.info("Using GCE provider config {config}", config=config)

        owns_metadata = metadata is None
        metadata_source = metadata or MetadataClient()
        pool = _thread_pool(config)
        loop = asyncio.get_running_loop()

        try:
            topology = await loop.run_in_executor(pool, resolve_topology, config, metadata_source)
            if credentials is None:
                credentials = await loop.run_in_executor(pool, credentials_from_config, config)
            await loop.run_in_executor(pool, bootstrap_credentials, credentials)
            clients = await loop.run_in_executor(
                pool, clients_factory, credentials, config.api_endpoint,
            )
            return await cls._assemble(
                topology,
                config=config,
                clients=clients,
                credentials=credentials,
                thread_pool=pool,
                manager_factory=manager_factory,
            )
        except BaseException:
            pool.shutdown(wait=False)
            raise
        finally:
            if owns_metadata and isinstance(metadata_source, MetadataClient):
                metadata_source.close()

    @classmethod
    async def from_topology(
        cls,
        topology: Topology,
        *,
        config: GCEConfig | None = None,
        clients: VendorClients | None = None,
        credentials: Credentials | None = None,
        manager_factory: ManagerFactory = GCEServiceManager,
    ) -> GCECloud:
        """Build from an already resolved topology, skipping metadata and bootstrap.

        An empty ``managed_zones`` is filled with every zone of the region.
        """
        config = config or GCEConfig()
        pool = _thread_pool(config)
        try:
            return await cls._assemble(
                topology,
                config=config,
                clients=clients,
                credentials=credentials,
                thread_pool=pool,
                manager_factory=manager_factory,
            )
        except BaseException:
            pool.shutdown(wait=False)
            raise

    @classmethod
    async def _assemble(
        cls,
        topology: Topology,
        *,
        config: GCEConfig,
        clients: VendorClients | None,
        credentials: Credentials | None,
        thread_pool: ThreadPoolExecutor,
        manager_factory: ManagerFactory,
    ) -> GCECloud:
        cloud = cls(
            topology,
            config=config,
            clients=clients,
            credentials=credentials,
            thread_pool=thread_pool,
            manager_factory=manager_factory,
        )
        cloud._topology = await complete_topology(topology, cloud.manager)
        return cloud

    async def run_blocking[T](self, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Run a blocking vendor SDK call on this adapter's thread pool."""
        loop = asyncio.get_running_loop()
        if kwargs:
            return await loop.run_in_executor(self._pool, lambda: fn(*args, **kwargs))
        return await loop.run_in_executor(self._pool, fn, *args)

    # -- capabilities -------------------------------------------------------

    def load_balancer(self) -> tuple[GCECloud, bool]:
        return self, True

    def instances(self) -> tuple[GCECloud, bool]:
        return self, True

    def zones(self) -> tuple[GCECloud, bool]:
        return self, True

    def clusters(self) -> tuple[GCECloud, bool]:
        return self, True

    def routes(self) -> tuple[GCECloud, bool]:
        return self, True

    # -- read-only topology -------------------------------------------------

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def region(self) -> str:
        return self._topology.region

    @property
    def project_id(self) -> str:
        """Project owning the instances."""
        return self._topology.project_id

    @property
    def network_project_id(self) -> str:
        """Project owning the network."""
        return self._topology.network_project_id

    @property
    def on_shared_network(self) -> bool:
        return self._topology.on_shared_network

    @property
    def network_url(self) -> str:
        return self._topology.network_url

    @property
    def subnetwork_url(self) -> str:
        return self._topology.subnetwork_url

    @property
    def local_zone(self) -> str:
        return self._topology.local_zone

    @property
    def managed_zones(self) -> tuple[str, ...]:
        return self._topology.managed_zones

    @property
    def node_tags(self) -> tuple[str, ...]:
        return self._config.node_tags

    @property
    def node_instance_prefix(self) -> str:
        return self._config.node_instance_prefix

    @property
    def config(self) -> GCEConfig:
        return self._config

    # -- shared machinery ---------------------------------------------------

    @property
    def clients(self) -> VendorClients | None:
        return self._clients

    @property
    def compute_service(self) -> Any:
        """Raw compute clients, for end-to-end tooling."""
        return self._clients.compute if self._clients else None

    @property
    def kms_service(self) -> Any:
        """Raw key management client, for etcd encryption."""
        return self._clients.kms if self._clients else None

    @property
    def manager(self) -> ServiceManager:
        return self._manager

    @property
    def poller(self) -> OperationPoller:
        return self._poller

    @property
    def rate_limiter(self) -> TokenBucket:
        return self._limiter

    @property
    def shared_resource_lock(self) -> SharedResourceLock:
        return self._shared_lock

    def poll_context(
        self, request: str, *, long: bool = False, cancel: asyncio.Event | None = None,
    ) -> PollContext:
        """Context using this adapter's configured deadline for the operation size."""
        timeout = self._config.long_operation_timeout if long else self._config.operation_timeout
        return PollContext(request=request, timeout=timeout, cancel=cancel)

    async def wait_for_operation(self, handle: OperationHandle, ctx: PollContext) -> PollResult:
        """Wait on ``handle`` in whatever scope it targets."""
        if handle.zone:
            return await self._manager.wait_for_zone_op(handle, handle.zone, ctx)
        if handle.region:
            return await self._manager.wait_for_region_op(handle, handle.region, ctx)
        return await self._manager.wait_for_global_op(handle, ctx)

    # -- zones --------------------------------------------------------------

    def get_zone(self) -> Zone:
        return Zone(failure_domain=self.local_zone, region=self.region)

    @staticmethod
    def scrub_dns(
        nameservers: Sequence[str], searches: Sequence[str],
    ) -> tuple[list[str], list[str]]:
        return scrub_dns(nameservers, searches)

    # -- disks --------------------------------------------------------------

    async def create_disk(
        self,
        disk: DiskSpec,
        zone: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Disk:
        zone = zone or self.local_zone
        op = await self._manager.create_disk(self.project_id, zone, disk)
        await self._manager.wait_for_zone_op(op, zone, self.poll_context("create_disk", cancel=cancel))
        log.info("Created disk {name} in {zone}", name=disk.name, zone=zone)
        return await self._manager.get_disk(self.project_id, zone, disk.name)

    async def get_disk(self, name: str, zone: str | None = None) -> Disk:
        return await self._manager.get_disk(self.project_id, zone or self.local_zone, name)

    async def delete_disk(
        self,
        name: str,
        zone: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        zone = zone or self.local_zone
        op = await self._manager.delete_disk(self.project_id, zone, name)
        await self._manager.wait_for_zone_op(op, zone, self.poll_context("delete_disk", cancel=cancel))
        log.info("Deleted disk {name} in {zone}", name=name, zone=zone)

    # -- lifecycle ----------------------------------------------------------

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _thread_pool(config: GCEConfig) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(
        max_workers=config.thread_pool_size,
        thread_name_prefix="gce-io",
    )
