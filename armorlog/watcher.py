"""Per-category event watchers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .errors import TransportError
from .events import EventCategory
from .output import EventSink
from .session import SessionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatcherResult:
    """How a watcher ended.

    ``outcome`` is one of ``quota``, ``cancelled``, ``stream_closed`` or
    ``transport_error``.
    """

    category: EventCategory
    outcome: str
    forwarded: int
    error: str | None = None


class EventWatcher:
    """Pulls one category from the relay, filters it and forwards matches.

    Alerts and logs are filtered and count against the session quota;
    relay messages are forwarded unfiltered and never count.
    """

    def __init__(self, session: SessionState, category: EventCategory, sink: EventSink) -> None:
        self.session = session
        self.category = category
        self.sink = sink
        self.forwarded = 0
        self.result: WatcherResult | None = None

    @property
    def counted(self) -> bool:
        return self.category is not EventCategory.MESSAGE

    async def run(self) -> WatcherResult:
        """Run until quota, cancellation, end of stream or transport failure."""
        token = self.session.token
        filters = self.session.filters if self.counted else None
        remaining = self.session.quota if self.counted else None
        outcome = "stream_closed"
        error: str | None = None

        if token.is_cancelled():
            self._finish("cancelled", None)
            return self.result

        stream = self.session.client.watch(
            self.category, self.session.options.log_filter.value
        )
        try:
            async for record in stream:
                if token.is_cancelled():
                    outcome = "cancelled"
                    break
                if filters is not None and not filters.matches(record):
                    continue
                await self.sink.emit(record)
                self.forwarded += 1
                if remaining is not None:
                    remaining -= 1
                    if remaining == 0:
                        outcome = "quota"
                        self.session.gate.report(self.category.value)
                        break
        except TransportError as exc:
            outcome = "transport_error"
            error = str(exc)
            logger.warning("Stopped watching %ss: %s", self.category.value, exc)
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            self._finish(outcome, error)
        return self.result

    def _finish(self, outcome: str, error: str | None) -> None:
        if self.result is not None:
            return
        self.result = WatcherResult(
            category=self.category, outcome=outcome, forwarded=self.forwarded, error=error
        )
        logger.info(
            "%s watcher finished (%s, %d forwarded)",
            self.category.title,
            outcome,
            self.forwarded,
        )
