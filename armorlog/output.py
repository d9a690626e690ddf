"""Output sinks and record formatting."""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

from rich.console import Console

from .events import EventRecord
from .options import DISABLED, STDOUT

RecordCallback = Callable[[EventRecord], None | Awaitable[None]]

# Attributes rendered in the header line rather than the body
_HEADER_ATTRIBUTES = ("Timestamp", "UpdatedTime")


def format_record(record: EventRecord, *, json_output: bool = False) -> str:
    """Render a record as one JSON line or a human-readable block."""
    if json_output:
        return json.dumps(record.to_dict(), default=str)

    lines = [f"== {record.category.title} / {record.updated_time} =="]
    for key, value in record.attributes.items():
        if key in _HEADER_ATTRIBUTES or value in ("", 0, None):
            continue
        lines.append(f"{key}: {value}")
    return "\n".join(lines)


@runtime_checkable
class EventSink(Protocol):
    """Destination for forwarded records."""

    async def emit(self, record: EventRecord) -> None: ...

    def close(self) -> None: ...


class ConsoleSink:
    """Prints records to a Rich console (stdout by default)."""

    def __init__(self, console: Console, *, json_output: bool = False) -> None:
        self._console = console
        self._json_output = json_output

    async def emit(self, record: EventRecord) -> None:
        self._console.print(
            format_record(record, json_output=self._json_output),
            markup=False,
            highlight=False,
            emoji=False,
            soft_wrap=True,
        )

    def close(self) -> None:
        return None


class FileSink:
    """Appends records to a file, one JSON line or text block per record."""

    def __init__(self, path: str | Path, *, json_output: bool = False) -> None:
        self.path = Path(path).expanduser()
        self._json_output = json_output
        self._handle: IO[str] | None = None
        self._lock = asyncio.Lock()

    async def emit(self, record: EventRecord) -> None:
        line = format_record(record, json_output=self._json_output) + "\n"
        # Alerts and logs may share one file
        async with self._lock:
            await asyncio.to_thread(self._write, line)

    def _write(self, line: str) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "a", encoding="utf-8")
        self._handle.write(line)
        self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class QueueSink:
    """Hands records to an in-process ``asyncio.Queue``."""

    def __init__(self, queue: asyncio.Queue[EventRecord]) -> None:
        self.queue = queue

    async def emit(self, record: EventRecord) -> None:
        await self.queue.put(record)

    def close(self) -> None:
        return None


class CallbackSink:
    """Calls a sync or async function for each record."""

    def __init__(self, callback: RecordCallback) -> None:
        self._callback = callback

    async def emit(self, record: EventRecord) -> None:
        maybe_awaitable = self._callback(record)
        if inspect.isawaitable(maybe_awaitable):
            await maybe_awaitable

    def close(self) -> None:
        return None


def open_sink(target: str, console: Console, *, json_output: bool = False) -> EventSink | None:
    """Map an output target (``stdout``, ``none`` or a path) to a sink."""
    if target == DISABLED:
        return None
    if target == STDOUT:
        return ConsoleSink(console, json_output=json_output)
    return FileSink(target, json_output=json_output)
