"""Cancellation primitives shared by the watchers of one session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class CancellationToken:
    """Cooperative cancellation token shared between controller and watchers.

    ``cancel`` may be called any number of times from the loop thread (signal
    handlers, watchers, the coordinator); only the first call records a reason.
    """

    reason: str | None = None
    cancelled_at: datetime | None = None
    _cancelled: bool = False
    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def cancel(self, reason: str = "requested") -> bool:
        """Mark token as cancelled (idempotent).

        Returns True only for the call that actually cancelled the token.
        """
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        self.cancelled_at = datetime.now(timezone.utc)
        self._event.set()
        return True

    def is_cancelled(self) -> bool:
        """Return True if cancellation was requested."""
        return self._cancelled

    async def wait(self) -> str | None:
        """Block until the token is cancelled and return the reason."""
        await self._event.wait()
        return self.reason


class CompletionGate:
    """Bounded rendezvous that watchers report to when their quota is spent.

    Each category may report once; reports past ``required`` are ignored.
    """

    def __init__(self, required: int) -> None:
        if required < 0:
            raise ValueError("required must be >= 0")
        self._required = required
        self._reported: list[str] = []
        self._done = asyncio.Event()
        if required == 0:
            self._done.set()

    @property
    def required(self) -> int:
        return self._required

    @property
    def reported(self) -> tuple[str, ...]:
        return tuple(self._reported)

    def report(self, category: str) -> bool:
        """Record one completion. Returns False for duplicates or overflow."""
        if category in self._reported or len(self._reported) >= self._required:
            return False
        self._reported.append(category)
        if len(self._reported) >= self._required:
            self._done.set()
        return True

    def is_complete(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> None:
        await self._done.wait()
