"""Operation-issuing facade over the vendor clients.

Callers depend on the narrow ServiceManager protocol rather than on the
vendor SDK, so a substitute (see gcecloud.fake) can drive the operation
poller deterministically in tests.

Every verb is a single vendor call with no local retry. Rejections are
re-raised as VendorError; waiting is delegated to the OperationPoller.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from google.api_core import exceptions as api_exceptions

from gcecloud.core.exceptions import VendorError
from gcecloud.observability.logger import logger
from gcecloud.operations import (
    OperationErrorDetail,
    OperationHandle,
    OperationKind,
    OperationStatus,
    PollContext,
    PollResult,
)
from gcecloud.topology import ZONES_PAGE_SIZE, last_component

if TYPE_CHECKING:
    from gcecloud.cloud import GCECloud

log = logger.bind(component="manager")


@dataclass(frozen=True, slots=True)
class DiskSpec:
    """What to create. ``disk_type`` is a type name such as ``pd-balanced``."""

    name: str
    size_gb: int
    disk_type: str = "pd-standard"
    description: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Disk:
    name: str
    zone: str
    size_gb: int
    disk_type: str
    status: str
    self_link: str = ""


@dataclass(frozen=True, slots=True)
class ZoneInfo:
    name: str
    region: str


@dataclass(frozen=True, slots=True)
class ZonePage:
    zones: tuple[ZoneInfo, ...]
    next_page_token: str = ""


@runtime_checkable
class ServiceManager(Protocol):
    async def create_disk(self, project: str, zone: str, disk: DiskSpec) -> OperationHandle: ...

    async def get_disk(self, project: str, zone: str, name: str) -> Disk: ...

    async def delete_disk(self, project: str, zone: str, name: str) -> OperationHandle: ...

    async def list_zones(self, project: str, page_token: str = "") -> ZonePage: ...

    async def get_operation(self, handle: OperationHandle) -> OperationStatus: ...

    async def wait_for_zone_op(
        self, handle: OperationHandle, zone: str, ctx: PollContext,
    ) -> PollResult: ...

    async def wait_for_region_op(
        self, handle: OperationHandle, region: str, ctx: PollContext,
    ) -> PollResult: ...

    async def wait_for_global_op(
        self, handle: OperationHandle, ctx: PollContext,
    ) -> PollResult: ...


class GCEServiceManager:
    """Production ServiceManager backed by google-cloud-compute.

    Stateless apart from the back-reference to its GCECloud, whose clients,
    thread pool and poller it uses.
    """

    def __init__(self, cloud: GCECloud) -> None:
        self._cloud = cloud

    @property
    def _compute(self) -> Any:
        clients = self._cloud.clients
        if clients is None:
            raise RuntimeError("GCECloud was built without vendor clients")
        return clients.compute

    async def _call[T](self, what: str, fn: Any, /, **kwargs: object) -> T:
        try:
            return await self._cloud.run_blocking(fn, **kwargs)
        except api_exceptions.GoogleAPICallError as e:
            log.debug("{what} rejected: {err}", what=what, err=e)
            raise VendorError(f"{what}: {e.message}", status_code=e.code) from e

    async def create_disk(self, project: str, zone: str, disk: DiskSpec) -> OperationHandle:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        resource = compute_v1.Disk(
            name=disk.name,
            size_gb=disk.size_gb,
            type_=f"zones/{zone}/diskTypes/{disk.disk_type}",
            description=disk.description,
            labels=disk.labels,
        )
        op = await self._call(
            f"create disk {disk.name}",
            self._compute.disks.insert_unary,
            project=project, zone=zone, disk_resource=resource,
        )
        return _to_handle(op)

    async def get_disk(self, project: str, zone: str, name: str) -> Disk:
        disk = await self._call(
            f"get disk {name}",
            self._compute.disks.get,
            project=project, zone=zone, disk=name,
        )
        return Disk(
            name=disk.name,
            zone=last_component(disk.zone) or zone,
            size_gb=disk.size_gb,
            disk_type=last_component(disk.type_),
            status=disk.status,
            self_link=disk.self_link,
        )

    async def delete_disk(self, project: str, zone: str, name: str) -> OperationHandle:
        op = await self._call(
            f"delete disk {name}",
            self._compute.disks.delete_unary,
            project=project, zone=zone, disk=name,
        )
        return _to_handle(op)

    async def list_zones(self, project: str, page_token: str = "") -> ZonePage:
        from google.cloud import compute_v1  # type: ignore[reportMissingImports]

        request = compute_v1.ListZonesRequest(
            project=project,
            max_results=ZONES_PAGE_SIZE,
            page_token=page_token,
        )

        def _first_page() -> Any:
            pager = self._compute.zones.list(request=request)
            return next(iter(pager.pages))

        response = await self._call("list zones", _first_page)
        return ZonePage(
            zones=tuple(ZoneInfo(name=z.name, region=z.region) for z in response.items),
            next_page_token=response.next_page_token,
        )

    async def get_operation(self, handle: OperationHandle) -> OperationStatus:
        project = self._cloud.project_id
        compute = self._compute

        if handle.zone:
            op = await self._call(
                f"get operation {handle.name}",
                compute.zone_operations.get,
                project=project, zone=handle.zone, operation=handle.name,
            )
        elif handle.region:
            op = await self._call(
                f"get operation {handle.name}",
                compute.region_operations.get,
                project=project, region=handle.region, operation=handle.name,
            )
        else:
            op = await self._call(
                f"get operation {handle.name}",
                compute.global_operations.get,
                project=project, operation=handle.name,
            )
        return _to_status(op)

    async def wait_for_zone_op(
        self, handle: OperationHandle, zone: str, ctx: PollContext,
    ) -> PollResult:
        return await self._cloud.poller.wait(
            replace(handle, zone=zone, region=""), self.get_operation, ctx,
        )

    async def wait_for_region_op(
        self, handle: OperationHandle, region: str, ctx: PollContext,
    ) -> PollResult:
        return await self._cloud.poller.wait(
            replace(handle, zone="", region=region), self.get_operation, ctx,
        )

    async def wait_for_global_op(
        self, handle: OperationHandle, ctx: PollContext,
    ) -> PollResult:
        return await self._cloud.poller.wait(
            replace(handle, zone="", region=""), self.get_operation, ctx,
        )


# =============================================================================
# Pure helper functions (no API calls)
# =============================================================================


def _to_status(op: Any) -> OperationStatus:
    """Translate a compute_v1.Operation into an OperationStatus."""
    from google.cloud import compute_v1  # type: ignore[reportMissingImports]

    error = getattr(op, "error", None)
    errors = tuple(
        OperationErrorDetail(code=e.code, message=e.message)
        for e in getattr(error, "errors", ()) or ()
    )
    return OperationStatus(
        done=op.status == compute_v1.Operation.Status.DONE,
        errors=errors,
        http_status=getattr(op, "http_error_status_code", None) or None,
    )


def _to_handle(op: Any) -> OperationHandle:
    """Build a handle from the operation returned by an issue call."""
    try:
        kind = OperationKind(str(getattr(op, "operation_type", "")).lower())
    except ValueError:
        kind = OperationKind.OTHER

    return OperationHandle(
        name=op.name,
        kind=kind,
        zone=last_component(getattr(op, "zone", "") or ""),
        region=last_component(getattr(op, "region", "") or ""),
        status=_to_status(op),
    )
