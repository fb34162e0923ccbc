"""
Admission gate for network operations.

Every HTTP operation ftb-dl performs (metadata calls and whole file downloads)
is funnelled through one :class:`AdmissionGate`, which guarantees that no more
than ``config.request_limit`` of them are in flight at once:

  - :meth:`AdmissionGate.enqueue` appends an operation to a FIFO backlog and
    returns its result once it has been admitted and has settled.
  - :meth:`AdmissionGate.pump` moves operations from the backlog into flight
    while capacity remains. It runs on every enqueue and after every
    settlement, successful or not.
  - :meth:`AdmissionGate.wait_until_queue_has_space` lets a caller that is not
    itself a queued request wait until a slot frees up. Waking a waiter is a
    hint only; the slot is not reserved for it.

Everything runs on a single event loop, so the bookkeeping needs no locks:
it is only mutated between suspension points.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ftb_dl.config import NetConfig
from ftb_dl.errors import FTBDLError, QueueTimeoutError, RequestTimeoutError

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


@dataclass(eq=False)
class QueuedRequest:
    """
    One pending network operation.

    ``uuid`` is assigned when the request is dispatched, not when queued.
    ``future`` is the single-assignment result cell the caller awaits.
    """

    operation: Operation
    future: asyncio.Future
    description: str = ""
    timeout: Optional[float] = None
    uuid: Optional[str] = None
    task: Optional[asyncio.Task] = None


class Waiter:
    """A caller blocked on spare capacity. Settles at most once."""

    def __init__(self, future: asyncio.Future):
        self.settled = False
        self.future = future
        self.timer: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return not self.settled and not self.future.done()

    def resolve(self) -> bool:
        if not self.pending:
            return False
        self._settle()
        self.future.set_result(None)
        return True

    def fail(self, exc: BaseException) -> bool:
        if not self.pending:
            return False
        self._settle()
        self.future.set_exception(exc)
        return True

    def _settle(self) -> None:
        self.settled = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class AdmissionGate:
    """
    Bounded-concurrency gate with a FIFO request queue and a waiter registry.

    Usage::

        gate = AdmissionGate(NetConfig(request_limit=3))
        data = await gate.enqueue(lambda: client.get("/modpack/5"), "GET /modpack/5")

    The limit and the default timeout are read from ``config`` each time a
    request is dispatched, so changes affect only requests still queued.
    Changing the limit does not by itself admit anything; the next enqueue or
    settlement does.
    """

    def __init__(self, config: Optional[NetConfig] = None):
        self.config = config if config is not None else NetConfig()
        self._in_flight: dict[str, QueuedRequest] = {}
        self._queue: deque[QueuedRequest] = deque()
        self._waiters: deque[Waiter] = deque()

    # ── Introspection ──────────────────────────────────────────────

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    @property
    def pending_count(self) -> int:
        return sum(1 for item in self._queue if not item.future.done())

    @property
    def waiting_count(self) -> int:
        return sum(1 for waiter in self._waiters if waiter.pending)

    @property
    def remaining_capacity(self) -> int:
        return self.config.request_limit - len(self._in_flight)

    # ── Request queue ──────────────────────────────────────────────

    async def enqueue(
        self,
        operation: Operation,
        description: str = "",
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Queue ``operation`` and return its result once it has run.

        ``operation`` is a zero-argument callable returning an awaitable; it
        is only called once the request is admitted. ``timeout`` (seconds)
        overrides the configured request timeout for this request; a non-finite
        value (``math.inf``) runs the operation without a deadline.

        Raises whatever the operation raised, or :class:`RequestTimeoutError`
        if it did not settle in time. The gate never retries.
        """
        item = QueuedRequest(
            operation=operation,
            future=asyncio.get_running_loop().create_future(),
            description=description,
            timeout=timeout,
        )
        self._queue.append(item)
        logger.debug(
            "Queued %s (%d pending, %d in flight)",
            description or "request",
            len(self._queue),
            len(self._in_flight),
        )
        self.pump()
        try:
            return await item.future
        except asyncio.CancelledError:
            if item.task is not None:
                item.task.cancel()
            raise

    def pump(self) -> None:
        """Admit queued requests while capacity remains, then wake waiters."""
        capacity = self.remaining_capacity
        if capacity <= 0:
            return
        while capacity > 0 and self._queue:
            item = self._queue.popleft()
            if item.future.done():
                # Caller gave up while queued
                continue
            self._dispatch(item)
            capacity -= 1
            self._notify_waiter()
        while capacity > 0 and self._notify_waiter():
            capacity -= 1

    def _dispatch(self, item: QueuedRequest) -> None:
        item.uuid = str(uuid.uuid4())
        timeout = item.timeout if item.timeout is not None else self.config.request_timeout
        self._in_flight[item.uuid] = item
        logger.debug(
            "Dispatching %s [%s] (%d/%d in flight)",
            item.description or "request",
            item.uuid,
            len(self._in_flight),
            self.config.request_limit,
        )
        item.task = asyncio.create_task(self._run(item, timeout))

    async def _run(self, item: QueuedRequest, timeout: float) -> None:
        try:
            deadline = timeout if math.isfinite(timeout) else None
            result = await asyncio.wait_for(item.operation(), deadline)
        except asyncio.CancelledError:
            if not item.future.done():
                item.future.cancel()
            raise
        except Exception as exc:
            error: BaseException = exc
            if isinstance(exc, asyncio.TimeoutError) and not isinstance(exc, FTBDLError):
                error = RequestTimeoutError(
                    f"{item.description or 'Request'} timed out after {timeout:g}s"
                )
                error.__cause__ = exc
            if not item.future.done():
                item.future.set_exception(error)
        else:
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._in_flight.pop(item.uuid, None)
            self.pump()

    # ── Waiter registry ────────────────────────────────────────────

    def _notify_waiter(self) -> bool:
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.resolve():
                # Runs after the woken caller; a slot it left unused goes to the next waiter
                asyncio.get_running_loop().call_soon(self.pump)
                return True
        return False

    async def wait_until_queue_has_space(self, timeout: Optional[float] = None) -> None:
        """
        Wait until fewer than ``request_limit`` requests are in flight.

        Returns immediately when there is capacity. Otherwise the caller is
        queued behind earlier waiters and woken in FIFO order as slots free.
        A positive finite ``timeout`` (seconds) raises
        :class:`QueueTimeoutError` if no slot frees up in time.
        """
        if self.remaining_capacity > 0:
            return
        loop = asyncio.get_running_loop()
        waiter = Waiter(loop.create_future())
        self._waiters.append(waiter)
        if timeout is not None and math.isfinite(timeout) and timeout > 0:
            waiter.timer = loop.call_later(
                timeout,
                waiter.fail,
                QueueTimeoutError(
                    f"Spent more than {timeout:g}s waiting for space in network queue"
                ),
            )
        self.pump()
        try:
            await waiter.future
        finally:
            waiter._settle()
