from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import grpc
import pytest

from armorlog import proto
from armorlog.client import GrpcTelemetryClient, TelemetryClient
from armorlog.errors import TransportError
from armorlog.events import EventCategory


class FakeLogService:
    """In-process relay serving the LogService methods the client calls."""

    def __init__(self, *, echo: bool = True, abort_after: int | None = None) -> None:
        self.echo = echo
        self.abort_after = abort_after
        self.filters: list[str] = []

    async def health_check(self, request, context):  # type: ignore[no-untyped-def]
        return proto.ReplyMessage(Retval=request.nonce if self.echo else request.nonce + 1)

    async def watch_alerts(self, request, context):  # type: ignore[no-untyped-def]
        self.filters.append(request.Filter)
        for index, namespace in enumerate(["default", "kube-system"]):
            if self.abort_after is not None and index >= self.abort_after:
                await context.abort(grpc.StatusCode.UNAVAILABLE, "relay restarting")
            yield proto.Alert(
                NamespaceName=namespace,
                PodName=f"pod-{index}",
                Operation="Process",
                Action="Block",
                HostPID=100 + index,
                UpdatedTime="2024-01-01T00:00:00Z",
            )

    async def watch_messages(self, request, context):  # type: ignore[no-untyped-def]
        yield proto.Message(Level="INFO", Message="relay started")

    def handler(self) -> grpc.GenericRpcHandler:
        return grpc.method_handlers_generic_handler(
            "feeder.LogService",
            {
                "HealthCheck": grpc.unary_unary_rpc_method_handler(
                    self.health_check,
                    request_deserializer=proto.NonceMessage.FromString,
                    response_serializer=proto.ReplyMessage.SerializeToString,
                ),
                "WatchAlerts": grpc.unary_stream_rpc_method_handler(
                    self.watch_alerts,
                    request_deserializer=proto.RequestMessage.FromString,
                    response_serializer=proto.Alert.SerializeToString,
                ),
                "WatchMessages": grpc.unary_stream_rpc_method_handler(
                    self.watch_messages,
                    request_deserializer=proto.RequestMessage.FromString,
                    response_serializer=proto.Message.SerializeToString,
                ),
            },
        )


@contextlib.asynccontextmanager
async def serve(service: FakeLogService) -> AsyncIterator[str]:
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((service.handler(),))
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    try:
        yield f"127.0.0.1:{port}"
    finally:
        await server.stop(None)


def test_message_to_dict_uses_relay_field_names() -> None:
    alert = proto.Alert(NamespaceName="default", Action="Audit", HostPID=7)

    data = proto.message_to_dict(alert)

    assert data["NamespaceName"] == "default"
    assert data["Action"] == "Audit"
    assert data["HostPID"] == 7
    assert data["Resource"] == ""
    assert "Action" not in proto.message_to_dict(proto.Log())


@pytest.mark.asyncio
async def test_health_check_requires_nonce_echo() -> None:
    async with serve(FakeLogService()) as address:
        client = GrpcTelemetryClient(address)
        assert isinstance(client, TelemetryClient)
        assert await client.health_check()
        await client.close()

    async with serve(FakeLogService(echo=False)) as address:
        client = GrpcTelemetryClient(address)
        assert not await client.health_check()
        await client.close()


@pytest.mark.asyncio
async def test_health_check_fails_when_nothing_listens() -> None:
    async with serve(FakeLogService()) as address:
        pass

    client = GrpcTelemetryClient(address, health_timeout=2.0)
    assert not await client.health_check()
    await client.close()


@pytest.mark.asyncio
async def test_watch_streams_records_with_filter() -> None:
    service = FakeLogService()
    async with serve(service) as address:
        client = GrpcTelemetryClient(address)
        records = [r async for r in client.watch(EventCategory.ALERT, "policy")]
        messages = [r async for r in client.watch(EventCategory.MESSAGE, "all")]
        await client.close()

    assert service.filters == ["policy"]
    assert [r.namespace for r in records] == ["default", "kube-system"]
    assert records[1].pod_name == "pod-1"
    assert records[1].attributes["HostPID"] == 101
    assert records[0].updated_time == "2024-01-01T00:00:00Z"
    assert all(r.category is EventCategory.ALERT for r in records)
    assert messages[0].attributes["Message"] == "relay started"


@pytest.mark.asyncio
async def test_stream_failure_becomes_transport_error() -> None:
    async with serve(FakeLogService(abort_after=1)) as address:
        client = GrpcTelemetryClient(address)
        received = []
        with pytest.raises(TransportError, match="UNAVAILABLE"):
            async for record in client.watch(EventCategory.ALERT):
                received.append(record)
        await client.close()

    assert len(received) == 1


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    async with serve(FakeLogService()) as address:
        client = GrpcTelemetryClient(address)
        await client.close()
        await client.close()
