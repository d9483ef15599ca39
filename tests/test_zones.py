from __future__ import annotations

import pytest
from conftest import RecordingLimiter

from gcecloud.core.exceptions import TopologyError
from gcecloud.fake import FakeServiceManager
from gcecloud.manager import ZoneInfo, ZonePage
from gcecloud.operations import OperationPoller
from gcecloud.topology import MAX_PAGES, Topology, complete_topology, discover_zones

REGION_URL = "https://www.googleapis.com/compute/v1/projects/p/regions/{}"


def _poller() -> OperationPoller:
    return OperationPoller(RecordingLimiter(), interval=0.01)


def _zone(name: str, region: str) -> ZoneInfo:
    return ZoneInfo(name=name, region=REGION_URL.format(region))


class TestDiscoverZones:
    @pytest.mark.asyncio
    async def test_filters_to_region(self):
        fake = FakeServiceManager.with_zones(_poller(), [
            ("us-central1-a", "us-central1"),
            ("us-central1-b", "us-central1"),
            ("europe-west1-b", "europe-west1"),
            ("us-central1-f", "us-central1"),
        ])
        zones = await discover_zones(fake, "p", "us-central1")
        assert zones == ("us-central1-a", "us-central1-b", "us-central1-f")

    @pytest.mark.asyncio
    async def test_follows_page_tokens(self):
        pairs = [(f"us-east1-{i}", "us-east1") for i in range(7)]
        fake = FakeServiceManager.with_zones(_poller(), pairs, page_size=3)

        zones = await discover_zones(fake, "p", "us-east1")

        assert zones == tuple(z for z, _ in pairs)
        assert [c[2] for c in fake.calls] == ["", "1", "2"]

    @pytest.mark.asyncio
    async def test_stops_at_page_cap(self):
        # 30 full pages, each claiming there is another one
        pages = [
            ZonePage(
                zones=tuple(_zone(f"zone-{p}-{i}", "r") for i in range(500)),
                next_page_token=str(p + 1),
            )
            for p in range(30)
        ]
        fake = FakeServiceManager(_poller(), zone_pages=pages)

        zones = await discover_zones(fake, "p", "r")

        assert MAX_PAGES == 25
        assert len(fake.calls) == 25
        assert len(zones) == 25 * 500

    @pytest.mark.asyncio
    async def test_custom_page_cap(self):
        page = ZonePage(zones=(_zone("z", "r"),), next_page_token="next")

        class Endless(FakeServiceManager):
            async def list_zones(self, project: str, page_token: str = "") -> ZonePage:
                self.calls.append(("list_zones", project, page_token))
                return page

        fake = Endless(_poller())
        await discover_zones(fake, "p", "r", max_pages=4)
        assert len(fake.calls) == 4


class TestCompleteTopology:
    def _topology(self, zones: tuple[str, ...]) -> Topology:
        return Topology(
            project_id="p",
            network_project_id="p",
            region="us-central1",
            local_zone="us-central1-a",
            managed_zones=zones,
            network_url="",
            subnetwork_url="",
            on_shared_network=False,
        )

    @pytest.mark.asyncio
    async def test_single_zone_untouched(self):
        fake = FakeServiceManager.with_zones(_poller(), [("us-central1-b", "us-central1")])
        topo = self._topology(("us-central1-a",))

        assert await complete_topology(topo, fake) is topo
        assert fake.calls == []

    @pytest.mark.asyncio
    async def test_multizone_populated(self):
        fake = FakeServiceManager.with_zones(_poller(), [
            ("us-central1-a", "us-central1"),
            ("us-central1-c", "us-central1"),
            ("asia-east1-a", "asia-east1"),
        ])
        topo = await complete_topology(self._topology(()), fake)

        assert topo.managed_zones == ("us-central1-a", "us-central1-c")
        assert topo.multizone

    @pytest.mark.asyncio
    async def test_no_zones_in_region(self):
        fake = FakeServiceManager.with_zones(_poller(), [("asia-east1-a", "asia-east1")])
        with pytest.raises(TopologyError, match="no zones found"):
            await complete_topology(self._topology(()), fake)
