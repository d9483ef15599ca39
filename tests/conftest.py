from __future__ import annotations

import pytest
import pytest_asyncio

from gcecloud.cloud import GCECloud
from gcecloud.config import GCEConfig
from gcecloud.fake import FakeServiceManager
from gcecloud.operations import OperationHandle, OperationStatus
from gcecloud.topology import Topology


class RecordingLimiter:
    """Rate limiter that never waits and records every token taken."""

    def __init__(self, events: list[str] | None = None) -> None:
        self.acquisitions = 0
        self.events = events if events is not None else []

    async def acquire(self) -> None:
        self.acquisitions += 1
        self.events.append("token")


class ScriptedCheck:
    """Status check returning queued statuses, repeating the last one."""

    def __init__(self, *statuses: OperationStatus, events: list[str] | None = None) -> None:
        self._statuses = list(statuses)
        self.calls = 0
        self.events = events if events is not None else []

    async def __call__(self, handle: OperationHandle) -> OperationStatus:
        self.calls += 1
        self.events.append("check")
        if len(self._statuses) > 1:
            return self._statuses.pop(0)
        return self._statuses[0]


class DictMetadata:
    def __init__(self, values: dict[str, str]) -> None:
        self.values = values
        self.queries: list[str] = []

    def get(self, path: str) -> str:
        self.queries.append(path)
        return self.values[path]


@pytest.fixture
def metadata() -> DictMetadata:
    return DictMetadata({
        "instance/zone": "projects/123456/zones/us-central1-b",
        "project/numeric-project-id": "123456",
        "instance/network-interfaces/0/network": "projects/123456/networks/default",
    })


@pytest.fixture
def topology() -> Topology:
    return Topology(
        project_id="my-project",
        network_project_id="my-project",
        region="us-central1",
        local_zone="us-central1-a",
        managed_zones=("us-central1-a",),
        network_url="https://www.googleapis.com/compute/v1/projects/my-project/global/networks/default",
        subnetwork_url="",
        on_shared_network=False,
    )


@pytest.fixture
def fast_config() -> GCEConfig:
    return GCEConfig(poll_interval=0.01, operation_timeout=5.0, long_operation_timeout=10.0)


@pytest_asyncio.fixture
async def cloud(topology: Topology, fast_config: GCEConfig):
    c = await GCECloud.from_topology(
        topology,
        config=fast_config,
        manager_factory=FakeServiceManager.for_cloud,
    )
    yield c
    c.close()


@pytest.fixture
def fake(cloud: GCECloud) -> FakeServiceManager:
    assert isinstance(cloud.manager, FakeServiceManager)
    return cloud.manager
