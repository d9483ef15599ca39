"""Serialization of read-modify-write sequences on shared vendor state.

The vendor API has no transactional read-modify-write, so sequences like
"list firewall rules, decide, rewrite them" must hold the facade's shared
lock from the first read to the last write::

    async with cloud.shared_resource_lock.hold("sync firewall k8s-fw"):
        rules = await list_rules()
        await apply(delta(rules))

Operations scoped to one caller-named object (get/delete one disk) do not
take it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from gcecloud.observability.logger import logger

log = logger.bind(component="locking")


class SharedResourceLock:
    """One mutual-exclusion domain per GCECloud.

    Released on every exit path, including errors and cancellation. A task
    that already holds the lock and asks for it again gets a RuntimeError
    instead of deadlocking itself.
    """

    __slots__ = ("_lock", "_owner", "_reason")

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[object] | None = None
        self._reason = ""

    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str:
        """Reason given by the current holder, empty when free."""
        return self._reason

    @asynccontextmanager
    async def hold(self, reason: str = "") -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            raise RuntimeError(
                f"shared resource lock already held by this task ({self._reason!r})"
            )

        if self._lock.locked():
            log.debug(
                "Waiting for shared resource lock held for {holder!r}",
                holder=self._reason,
            )
        await self._lock.acquire()
        self._owner = task
        self._reason = reason
        log.trace("Shared resource lock acquired for {reason!r}", reason=reason)
        try:
            yield
        finally:
            self._owner = None
            self._reason = ""
            self._lock.release()
            log.trace("Shared resource lock released for {reason!r}", reason=reason)
