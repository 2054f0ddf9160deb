"""Fixed-interval polling with a time budget."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar


log = logging.getLogger(__name__)

T = TypeVar("T")


class PollStatus(str, Enum):
    ready = "ready"
    failed = "failed"
    timed_out = "timed_out"


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """Result of a polling run.

    Attributes:
        status: Why polling stopped
        state: Last successfully probed state, if any
        attempts: Number of probes made, including ones that raised
    """

    status: PollStatus
    state: T | None
    attempts: int

    @property
    def ready(self) -> bool:
        return self.status is PollStatus.ready


@dataclass(frozen=True)
class PollingLoop:
    """Repeatedly probe until a predicate holds, a failure shows, or time runs out.

    Every iteration first checks the budget, then sleeps ``interval``, then
    probes. A probe that raises is treated as transient: it is logged and
    polling continues. ``timeout=None`` polls until a predicate decides.

    The same loop backs both execution contexts. Interactive callers await
    it to completion; background tasks run it detached.
    """

    interval: float
    timeout: float | None = None
    probe_immediately: bool = False

    def _expired(self, started: float) -> bool:
        return self.timeout is not None and time.monotonic() - started > self.timeout

    def _sleep_time(self, attempt: int) -> float:
        if attempt == 0 and self.probe_immediately:
            return 0
        return self.interval

    def _decide(
        self,
        state: T,
        ready: Callable[[T], bool],
        failed: Callable[[T], bool] | None,
    ) -> PollStatus | None:
        if failed is not None and failed(state):
            return PollStatus.failed
        if ready(state):
            return PollStatus.ready
        return None

    async def run(
        self,
        probe: Callable[[], Awaitable[T]],
        ready: Callable[[T], bool],
        failed: Callable[[T], bool] | None = None,
        on_probe: Callable[[T], None] | None = None,
    ) -> PollOutcome[T]:
        """Poll with an async probe.

        Args:
            probe: Fetches the current state
            ready: Success predicate
            failed: Hard-failure predicate, checked before ``ready``
            on_probe: Called with every successfully probed state

        Returns:
            Outcome with the last observed state
        """
        started = time.monotonic()
        attempts = 0
        state: T | None = None

        while not self._expired(started):
            await asyncio.sleep(self._sleep_time(attempts))
            attempts += 1
            try:
                state = await probe()
            except Exception as e:
                log.warning("Probe failed (attempt %d), retrying: %s", attempts, e)
                continue

            if on_probe is not None:
                on_probe(state)
            decision = self._decide(state, ready, failed)
            if decision is not None:
                return PollOutcome(decision, state, attempts)

        return PollOutcome(PollStatus.timed_out, state, attempts)

