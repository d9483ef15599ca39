"""Token bucket admission gate for operation status checks.

One bucket is owned by each GCECloud and shared by every concurrent
operation poller, bounding aggregate poll QPS against the vendor no matter
how many operations are in flight.

Example:
    bucket = TokenBucket(qps=10.0, burst=100)

    for op in operations:
        await bucket.acquire()
        await check(op)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from time import monotonic
from typing import Protocol, runtime_checkable

from gcecloud.observability.logger import logger

log = logger.bind(component="throttle")


@runtime_checkable
class RateLimiter(Protocol):
    async def acquire(self) -> None: ...


class TokenBucket:
    """Asyncio token bucket with automatic backpressure.

    Starts full with ``burst`` tokens and refills continuously at ``qps``
    tokens per second. ``acquire`` suspends the caller until a token is
    available; it never drops or rejects. Waiters are served in arrival
    order.
    """

    __slots__ = ("qps", "burst", "_tokens", "_last", "_lock", "_clock")

    def __init__(
        self,
        qps: float = 10.0,
        burst: int = 100,
        *,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Initialize the bucket.

        Args:
            qps: Refill rate in tokens per second.
            burst: Bucket capacity.
            clock: Monotonic time source, in seconds.
        """
        if qps <= 0 or burst < 1:
            raise ValueError(f"invalid token bucket: qps={qps} burst={burst}")
        self.qps = qps
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.qps)
        self._last = now

    @property
    def tokens(self) -> float:
        """Tokens currently available."""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, waiting for the refill if the bucket is empty."""
        async with self._lock:
            self._refill()
            while self._tokens < 1:
                wait_time = (1 - self._tokens) / self.qps
                log.trace("Bucket empty, waiting {t:.3f}s", t=wait_time)
                # Sleep holding the lock so later callers queue behind us
                await asyncio.sleep(wait_time)
                self._refill()
            self._tokens -= 1

    def try_acquire(self) -> bool:
        """Take a token only if one is available right now."""
        if self._lock.locked():
            return False
        self._refill()
        if self._tokens < 1:
            return False
        self._tokens -= 1
        return True

    def __repr__(self) -> str:
        return f"TokenBucket(qps={self.qps}, burst={self.burst})"
