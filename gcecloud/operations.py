"""Asynchronous operation polling.

Vendor mutations return an operation handle immediately and complete
later. OperationPoller turns that into a blocking, deadline-bounded,
rate-limited wait::

    ISSUED -> POLLING -> DONE | FAILED | TIMED_OUT | CANCELLED

Each polling step takes one token from the shared rate limiter, issues
one status check, and either finishes or sleeps for the poll interval.
The poller never retries the operation itself.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from gcecloud.core.exceptions import (
    OperationCancelled,
    OperationFailed,
    OperationTimedOut,
    VendorError,
)
from gcecloud.observability.logger import logger
from gcecloud.throttle import RateLimiter

log = logger.bind(component="operations")

POLL_INTERVAL = 3.0
DEFAULT_TIMEOUT = 15 * 60.0
# Creating routes in very large clusters may take more than half an hour.
LONG_TIMEOUT = 60 * 60.0
# Limiter waits longer than this are worth reporting.
THROTTLE_REPORT_THRESHOLD = 5.0


class OperationKind(StrEnum):
    INSERT = "insert"
    DELETE = "delete"
    UPDATE = "update"
    OTHER = "other"


class OperationState(StrEnum):
    ISSUED = "issued"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (OperationState.ISSUED, OperationState.POLLING)


@dataclass(frozen=True, slots=True)
class OperationErrorDetail:
    code: str
    message: str


@dataclass(frozen=True, slots=True)
class OperationStatus:
    """One observation of a vendor operation."""

    done: bool
    errors: tuple[OperationErrorDetail, ...] = ()
    http_status: int | None = None

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @classmethod
    def pending(cls) -> OperationStatus:
        return cls(done=False)

    @classmethod
    def succeeded(cls) -> OperationStatus:
        return cls(done=True)

    @classmethod
    def failure(cls, code: str, message: str, http_status: int | None = None) -> OperationStatus:
        return cls(
            done=True,
            errors=(OperationErrorDetail(code=code, message=message),),
            http_status=http_status,
        )


@dataclass(frozen=True, slots=True)
class OperationHandle:
    """Vendor token for an in-progress action.

    Targets a zone, a region, or (with neither) the global scope.
    ``status`` is what the issuing call already reported, if anything.
    """

    name: str
    kind: OperationKind = OperationKind.OTHER
    zone: str = ""
    region: str = ""
    status: OperationStatus | None = None

    @property
    def scope(self) -> str:
        if self.zone:
            return f"zones/{self.zone}"
        if self.region:
            return f"regions/{self.region}"
        return "global"


@dataclass(frozen=True, slots=True)
class PollContext:
    """Per-call polling parameters.

    Args:
        request: Label for logs, e.g. ``"create_disk"``.
        timeout: Deadline in seconds, counted from the start of the wait.
        cancel: Set by the caller to stop polling early.
    """

    request: str
    timeout: float = DEFAULT_TIMEOUT
    cancel: asyncio.Event | None = None

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"poll timeout must be positive, got {self.timeout}")

    @classmethod
    def long(cls, request: str, cancel: asyncio.Event | None = None) -> PollContext:
        return cls(request=request, timeout=LONG_TIMEOUT, cancel=cancel)


@dataclass(frozen=True, slots=True)
class PollResult:
    handle: OperationHandle
    state: OperationState
    checks: int
    elapsed: float


type StatusCheck = Callable[[OperationHandle], Awaitable[OperationStatus]]


class _Outcome(StrEnum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


async def _bounded(
    aw: Awaitable[object],
    timeout: float,
    cancel: asyncio.Event | None,
) -> tuple[_Outcome, object]:
    """Await ``aw`` unless the timeout passes or ``cancel`` is set first."""
    task = asyncio.ensure_future(aw)
    waiters: set[asyncio.Future[object]] = {task}
    cancel_task = None
    if cancel is not None:
        cancel_task = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_task)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=max(timeout, 0.0),
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        pending = [t for t in waiters if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    if task in done:
        return _Outcome.COMPLETED, task.result()
    if cancel_task is not None and cancel_task in done:
        return _Outcome.CANCELLED, None
    return _Outcome.TIMED_OUT, None


class OperationPoller:
    """Deadline-parametric operation waiter.

    Holds no per-operation state: concurrent waits share only the rate
    limiter, so one poller serves a whole GCECloud.
    """

    def __init__(self, limiter: RateLimiter, *, interval: float = POLL_INTERVAL) -> None:
        self._limiter = limiter
        self._interval = interval

    @property
    def interval(self) -> float:
        return self._interval

    async def wait(
        self,
        handle: OperationHandle,
        check: StatusCheck,
        ctx: PollContext,
    ) -> PollResult:
        """Poll ``handle`` with ``check`` until it reaches a terminal state.

        Raises:
            OperationFailed: The vendor reported a terminal failure.
            OperationTimedOut: ``ctx.timeout`` passed first.
            OperationCancelled: ``ctx.cancel`` was set first.
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + ctx.timeout
        checks = 0
        state = OperationState.ISSUED
        op_log = log.bind(operation=handle.name, request=ctx.request)

        def finish(new_state: OperationState) -> PollResult:
            elapsed = loop.time() - start
            op_log.debug(
                "Operation {name} ({scope}) {old} -> {new} after {n} checks in {t:.1f}s",
                name=handle.name, scope=handle.scope, old=state, new=new_state,
                n=checks, t=elapsed,
            )
            return PollResult(handle=handle, state=new_state, checks=checks, elapsed=elapsed)

        def fail(
            new_state: OperationState, errors: tuple[OperationErrorDetail, ...] = (),
        ) -> Exception:
            finish(new_state)
            match new_state:
                case OperationState.FAILED:
                    return OperationFailed(handle, errors)
                case OperationState.CANCELLED:
                    return OperationCancelled(handle)
                case _:
                    return OperationTimedOut(handle, ctx.timeout)

        if handle.status is not None and handle.status.done:
            if handle.status.failed:
                raise fail(OperationState.FAILED, handle.status.errors)
            return finish(OperationState.DONE)

        state = OperationState.POLLING
        op_log.debug("Polling operation {name} ({scope})", name=handle.name, scope=handle.scope)

        while True:
            if ctx.cancel is not None and ctx.cancel.is_set():
                raise fail(OperationState.CANCELLED)

            throttle_start = loop.time()
            outcome, _ = await _bounded(self._limiter.acquire(), deadline - throttle_start, ctx.cancel)
            if outcome is _Outcome.CANCELLED:
                raise fail(OperationState.CANCELLED)
            if outcome is _Outcome.TIMED_OUT:
                raise fail(OperationState.TIMED_OUT)
            if (throttled := loop.time() - throttle_start) > THROTTLE_REPORT_THRESHOLD:
                op_log.info(
                    "Throttled {t:.1f}s before polling {name}", t=throttled, name=handle.name,
                )

            checks += 1
            try:
                outcome, status = await _bounded(check(handle), deadline - loop.time(), ctx.cancel)
            except VendorError as e:
                # A failed status check says nothing about the operation itself
                op_log.warning("Poll of operation {name} failed: {err}", name=handle.name, err=e)
                outcome, status = _Outcome.COMPLETED, None

            if outcome is _Outcome.CANCELLED:
                raise fail(OperationState.CANCELLED)
            if outcome is _Outcome.TIMED_OUT:
                raise fail(OperationState.TIMED_OUT)

            if isinstance(status, OperationStatus):
                if status.failed:
                    raise fail(OperationState.FAILED, status.errors)
                if status.done:
                    return finish(OperationState.DONE)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise fail(OperationState.TIMED_OUT)

            outcome, _ = await _bounded(asyncio.sleep(self._interval), remaining, ctx.cancel)
            if outcome is _Outcome.CANCELLED:
                raise fail(OperationState.CANCELLED)
            if outcome is _Outcome.TIMED_OUT:
                raise fail(OperationState.TIMED_OUT)
