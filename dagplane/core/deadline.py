"""
Deadlines for blocking calls made from the asyncio pipeline.

Repository reads, object store calls and scheduler bootstrap are blocking
network I/O. They run in worker threads, each bounded by the smaller of the
per-call timeout and what is left of the caller's overall budget.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional, TypeVar

from ..errors import DeadlineExceeded

T = TypeVar("T")


class Deadline:
    """Caller supplied time budget for an externally invoked operation.

    Args:
        timeout: Overall budget in seconds, None for no limit
        call_timeout: Upper bound for any single blocking call
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        call_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self.expires_at = None if timeout is None else clock() + timeout
        self.call_timeout = call_timeout

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def budget(self) -> Optional[float]:
        """Time allowed for the next call."""
        remaining = self.remaining()
        if remaining is None:
            return self.call_timeout
        if self.call_timeout is None:
            return remaining
        return min(remaining, self.call_timeout)

    def check(self, operation: str) -> None:
        if self.expired():
            raise DeadlineExceeded(operation)

    async def run(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking ``fn`` in a worker thread within the budget.

        A call that times out keeps running in its thread until it returns;
        only the caller stops waiting for it.

        Raises:
            DeadlineExceeded: If the budget is spent before or during the call
        """
        self.check(operation)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout=self.budget()
            )
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(operation) from e
