from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from armorlog.events import EventCategory, EventRecord
from armorlog.output import (
    CallbackSink,
    ConsoleSink,
    FileSink,
    QueueSink,
    format_record,
    open_sink,
)


def _alert() -> EventRecord:
    return EventRecord.from_attributes(
        EventCategory.ALERT,
        {
            "Timestamp": 1700000000,
            "UpdatedTime": "2023-11-14T22:13:20.000000Z",
            "NamespaceName": "default",
            "PodName": "nginx-7d9",
            "Operation": "Process",
            "Resource": "/bin/[sh]",
            "Action": "Block",
            "HostPID": 0,
            "Tags": "",
        },
    )


def test_text_format_has_header_and_skips_empty_values() -> None:
    text = format_record(_alert())
    lines = text.splitlines()

    assert lines[0] == "== Alert / 2023-11-14T22:13:20.000000Z =="
    assert "NamespaceName: default" in lines
    assert "Action: Block" in lines
    assert not any(line.startswith(("HostPID", "Tags", "Timestamp", "UpdatedTime")) for line in lines)


def test_json_format_keeps_every_attribute() -> None:
    payload = json.loads(format_record(_alert(), json_output=True))

    assert payload["PodName"] == "nginx-7d9"
    assert payload["HostPID"] == 0
    assert payload["Timestamp"] == 1700000000


@pytest.mark.asyncio
async def test_console_sink_prints_without_markup() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None)

    await ConsoleSink(console).emit(_alert())

    assert "Resource: /bin/[sh]" in buffer.getvalue()


@pytest.mark.asyncio
async def test_file_sink_appends_json_lines(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "alerts.jsonl"
    sink = FileSink(target, json_output=True)

    await sink.emit(_alert())
    await sink.emit(_alert())
    sink.close()
    sink.close()

    lines = target.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[1])["Action"] == "Block"


@pytest.mark.asyncio
async def test_queue_and_callback_sinks() -> None:
    queue: asyncio.Queue[EventRecord] = asyncio.Queue()
    await QueueSink(queue).emit(_alert())
    assert queue.qsize() == 1

    received: list[EventRecord] = []

    async def on_record(record: EventRecord) -> None:
        received.append(record)

    await CallbackSink(on_record).emit(_alert())
    await CallbackSink(received.append).emit(_alert())
    assert len(received) == 2


def test_open_sink_maps_targets(tmp_path: Path) -> None:
    console = Console(file=io.StringIO())

    assert open_sink("none", console) is None
    assert isinstance(open_sink("stdout", console), ConsoleSink)
    file_sink = open_sink(str(tmp_path / "out.log"), console)
    assert isinstance(file_sink, FileSink)
    assert file_sink.path == tmp_path / "out.log"


@pytest.mark.asyncio
async def test_console_sink_leaves_emoji_codes_alone() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None)
    record = EventRecord.from_attributes(
        EventCategory.LOG, {"Resource": "/tmp/a:bug:b", "Data": "x:warning:y"}
    )

    await ConsoleSink(console, json_output=True).emit(record)
    await ConsoleSink(console).emit(record)

    json_line, *text_lines = buffer.getvalue().splitlines()
    assert json.loads(json_line) == {"Resource": "/tmp/a:bug:b", "Data": "x:warning:y"}
    assert "Resource: /tmp/a:bug:b" in text_lines
    assert "Data: x:warning:y" in text_lines


@pytest.mark.asyncio
async def test_file_sink_keeps_concurrent_records_whole(tmp_path: Path) -> None:
    target = tmp_path / "events.jsonl"
    sink = FileSink(target, json_output=True)
    records = [
        EventRecord.from_attributes(EventCategory.ALERT, {"PodName": f"pod-{i}"}) for i in range(20)
    ]

    await asyncio.gather(*(sink.emit(record) for record in records))
    sink.close()

    lines = target.read_text(encoding="utf-8").splitlines()
    assert sorted(json.loads(line)["PodName"] for line in lines) == sorted(
        f"pod-{i}" for i in range(20)
    )
