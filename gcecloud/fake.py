"""In-memory ServiceManager for deterministic tests.

Operations follow scripted status sequences, disks live in a dict, and
zone listings come from preset pages. Every call is recorded.

Example:
    fake = FakeServiceManager(OperationPoller(TokenBucket(), interval=0.01))
    fake.script(OperationStatus.pending(), OperationStatus.pending(), OperationStatus.succeeded())
    op = await fake.create_disk("p", "us-central1-a", DiskSpec(name="d", size_gb=10))
    await fake.wait_for_zone_op(op, "us-central1-a", PollContext(request="create_disk"))
    assert fake.status_checks[op.name] == 3
"""

from __future__ import annotations

from collections import Counter, deque
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from gcecloud.core.exceptions import VendorError
from gcecloud.manager import Disk, DiskSpec, ZoneInfo, ZonePage
from gcecloud.operations import (
    OperationHandle,
    OperationKind,
    OperationPoller,
    OperationStatus,
    PollContext,
    PollResult,
)

if TYPE_CHECKING:
    from gcecloud.cloud import GCECloud


class FakeServiceManager:
    """ServiceManager substitute driving the poller without a vendor.

    Operations issued after ``script(...)`` report the scripted statuses in
    order, repeating the last one once exhausted. Unscripted operations
    succeed on the first check.
    """

    def __init__(
        self,
        poller: OperationPoller,
        *,
        zone_pages: Sequence[ZonePage] = (),
    ) -> None:
        self._poller = poller
        self._zone_pages = list(zone_pages)
        self._scripts: deque[tuple[OperationStatus, ...]] = deque()
        self._operations: dict[str, deque[OperationStatus]] = {}
        self._op_counter = 0
        self.disks: dict[tuple[str, str], Disk] = {}
        self.status_checks: Counter[str] = Counter()
        self.calls: list[tuple[str, ...]] = []
        self.fail_next_issue: VendorError | None = None

    @classmethod
    def for_cloud(cls, cloud: GCECloud) -> FakeServiceManager:
        return cls(cloud.poller)

    @classmethod
    def with_zones(
        cls,
        poller: OperationPoller,
        zones: Iterable[tuple[str, str]],
        *,
        page_size: int = 500,
    ) -> FakeServiceManager:
        """Split ``(zone, region)`` pairs into linked pages of ``page_size``."""
        infos = [
            ZoneInfo(name=z, region=f"https://www.googleapis.com/compute/v1/projects/p/regions/{r}")
            for z, r in zones
        ]
        chunks = [infos[i:i + page_size] for i in range(0, len(infos), page_size)] or [[]]
        pages = [
            ZonePage(
                zones=tuple(chunk),
                next_page_token=str(i + 1) if i + 1 < len(chunks) else "",
            )
            for i, chunk in enumerate(chunks)
        ]
        return cls(poller, zone_pages=pages)

    def script(self, *statuses: OperationStatus) -> None:
        """Queue the status sequence for the next issued operation."""
        if not statuses:
            raise ValueError("script needs at least one status")
        self._scripts.append(statuses)

    def _issue(self, kind: OperationKind, zone: str) -> OperationHandle:
        if (error := self.fail_next_issue) is not None:
            self.fail_next_issue = None
            raise error
        self._op_counter += 1
        name = f"operation-{self._op_counter}"
        statuses = self._scripts.popleft() if self._scripts else (OperationStatus.succeeded(),)
        self._operations[name] = deque(statuses)
        return OperationHandle(name=name, kind=kind, zone=zone)

    async def create_disk(self, project: str, zone: str, disk: DiskSpec) -> OperationHandle:
        self.calls.append(("create_disk", project, zone, disk.name))
        if (zone, disk.name) in self.disks:
            raise VendorError(f"create disk {disk.name}: already exists", status_code=409)
        handle = self._issue(OperationKind.INSERT, zone)
        self.disks[(zone, disk.name)] = Disk(
            name=disk.name,
            zone=zone,
            size_gb=disk.size_gb,
            disk_type=disk.disk_type,
            status="READY",
            self_link=f"projects/{project}/zones/{zone}/disks/{disk.name}",
        )
        return handle

    async def get_disk(self, project: str, zone: str, name: str) -> Disk:
        self.calls.append(("get_disk", project, zone, name))
        if (disk := self.disks.get((zone, name))) is None:
            raise VendorError(f"get disk {name}: not found", status_code=404)
        return disk

    async def delete_disk(self, project: str, zone: str, name: str) -> OperationHandle:
        self.calls.append(("delete_disk", project, zone, name))
        if (zone, name) not in self.disks:
            raise VendorError(f"delete disk {name}: not found", status_code=404)
        handle = self._issue(OperationKind.DELETE, zone)
        del self.disks[(zone, name)]
        return handle

    async def list_zones(self, project: str, page_token: str = "") -> ZonePage:
        self.calls.append(("list_zones", project, page_token))
        index = int(page_token) if page_token else 0
        if index >= len(self._zone_pages):
            return ZonePage(zones=())
        return self._zone_pages[index]

    async def get_operation(self, handle: OperationHandle) -> OperationStatus:
        self.status_checks[handle.name] += 1
        statuses = self._operations.get(handle.name)
        if statuses is None:
            raise VendorError(f"get operation {handle.name}: not found", status_code=404)
        if len(statuses) > 1:
            return statuses.popleft()
        return statuses[0]

    async def wait_for_zone_op(
        self, handle: OperationHandle, zone: str, ctx: PollContext,
    ) -> PollResult:
        return await self._poller.wait(replace(handle, zone=zone, region=""), self.get_operation, ctx)

    async def wait_for_region_op(
        self, handle: OperationHandle, region: str, ctx: PollContext,
    ) -> PollResult:
        return await self._poller.wait(replace(handle, zone="", region=region), self.get_operation, ctx)

    async def wait_for_global_op(
        self, handle: OperationHandle, ctx: PollContext,
    ) -> PollResult:
        return await self._poller.wait(replace(handle, zone="", region=""), self.get_operation, ctx)
