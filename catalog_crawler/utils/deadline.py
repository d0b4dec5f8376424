"""
Time budget and cancel signal shared by the crawl and PDF stages.
"""

import asyncio
from typing import Iterable, Optional


class Deadline:
    """Overall time budget plus an optional external cancel event."""

    def __init__(self, timeout: Optional[float], cancel_event: Optional[asyncio.Event] = None):
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._expires_at = loop.time() + timeout if timeout else None
        self.cancel_event = cancel_event

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._loop.time())

    @property
    def expired(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


async def wait_within(tasks: Iterable[asyncio.Future], deadline: Deadline) -> bool:
    """
    Wait for tasks until they finish or the deadline passes.

    Unfinished tasks are cancelled (and awaited) on expiry, so callers can
    read results from the tasks that completed.

    Returns:
        True when the wait was interrupted by the deadline or cancel event.
    """
    pending = set(tasks)
    cancel_waiter = (
        asyncio.ensure_future(deadline.cancel_event.wait())
        if deadline.cancel_event is not None
        else None
    )
    interrupted = False

    try:
        while pending:
            if deadline.expired:
                interrupted = True
                break
            waiting = set(pending)
            if cancel_waiter is not None:
                waiting.add(cancel_waiter)
            done, _ = await asyncio.wait(
                waiting,
                timeout=deadline.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                interrupted = True
                break
            pending -= done
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    return interrupted
