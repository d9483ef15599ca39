"""gcecloud - Google Compute Engine adapter for cluster control planes.

Turns fire-and-forget Compute Engine operations into blocking,
deadline-bounded, rate-limited calls, and serializes mutations of shared
vendor state.

Example:

    from gcecloud import GCECloud, DiskSpec, load_config

    async with await GCECloud.create(load_config("/etc/gce.conf")) as cloud:
        await cloud.create_disk(DiskSpec(name="data", size_gb=100))
"""

from gcecloud.cloud import PROVIDER_NAME, GCECloud, Zone, scrub_dns
from gcecloud.config import GCEConfig, load_config
from gcecloud.core.exceptions import (
    ConfigError,
    CredentialError,
    GCECloudError,
    OperationCancelled,
    OperationFailed,
    OperationTimedOut,
    TopologyError,
    VendorError,
)
from gcecloud.locking import SharedResourceLock
from gcecloud.manager import Disk, DiskSpec, GCEServiceManager, ServiceManager, ZoneInfo, ZonePage
from gcecloud.operations import (
    OperationHandle,
    OperationKind,
    OperationPoller,
    OperationState,
    OperationStatus,
    PollContext,
    PollResult,
)
from gcecloud.throttle import RateLimiter, TokenBucket
from gcecloud.topology import Topology, is_project_number

__all__ = [
    "PROVIDER_NAME",
    "ConfigError",
    "CredentialError",
    "Disk",
    "DiskSpec",
    "GCECloud",
    "GCECloudError",
    "GCEConfig",
    "GCEServiceManager",
    "OperationCancelled",
    "OperationFailed",
    "OperationHandle",
    "OperationKind",
    "OperationPoller",
    "OperationState",
    "OperationStatus",
    "OperationTimedOut",
    "PollContext",
    "PollResult",
    "RateLimiter",
    "ServiceManager",
    "SharedResourceLock",
    "TokenBucket",
    "Topology",
    "TopologyError",
    "VendorError",
    "Zone",
    "ZoneInfo",
    "ZonePage",
    "is_project_number",
    "load_config",
    "scrub_dns",
]
