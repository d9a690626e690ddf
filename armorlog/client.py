"""Relay client: health probe, category streams and teardown."""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

import grpc

from . import proto
from .errors import ShutdownError, TransportError
from .events import EventCategory, EventRecord

logger = logging.getLogger(__name__)

_STREAM_METHODS = {
    EventCategory.ALERT: ("WatchAlerts", proto.Alert),
    EventCategory.LOG: ("WatchLogs", proto.Log),
    EventCategory.MESSAGE: ("WatchMessages", proto.Message),
}


@runtime_checkable
class TelemetryClient(Protocol):
    """Structural interface for relay clients.

    ``watch`` yields records until the stream ends and raises
    ``TransportError`` if it fails. ``close`` must be safe to call twice.
    """

    @property
    def address(self) -> str: ...

    async def health_check(self) -> bool: ...

    def watch(self, category: EventCategory, log_filter: str = "all") -> AsyncIterator[EventRecord]: ...

    async def close(self) -> None: ...


class GrpcTelemetryClient:
    """``grpc.aio`` client for the relay's LogService.

    Must be constructed inside a running event loop.
    """

    def __init__(self, address: str, *, health_timeout: float = 10.0) -> None:
        self._address = address
        self._health_timeout = health_timeout
        self._closed = False
        self._channel = grpc.aio.insecure_channel(address)
        self._health = self._channel.unary_unary(
            f"{proto.SERVICE}/HealthCheck",
            request_serializer=proto.NonceMessage.SerializeToString,
            response_deserializer=proto.ReplyMessage.FromString,
        )
        self._streams = {
            category: self._channel.unary_stream(
                f"{proto.SERVICE}/{method}",
                request_serializer=proto.RequestMessage.SerializeToString,
                response_deserializer=message_cls.FromString,
            )
            for category, (method, message_cls) in _STREAM_METHODS.items()
        }

    @property
    def address(self) -> str:
        return self._address

    async def health_check(self) -> bool:
        """Send a random nonce; the relay is healthy if it echoes it back."""
        nonce = secrets.randbelow(2**31)
        try:
            reply = await self._health(
                proto.NonceMessage(nonce=nonce), timeout=self._health_timeout
            )
        except grpc.aio.AioRpcError as exc:
            logger.debug("Health check against %s failed: %s", self._address, exc.code().name)
            return False
        return reply.Retval == nonce

    async def watch(
        self, category: EventCategory, log_filter: str = "all"
    ) -> AsyncIterator[EventRecord]:
        call = self._streams[category](proto.RequestMessage(Filter=log_filter))
        try:
            async for message in call:
                yield EventRecord.from_attributes(category, proto.message_to_dict(message))
        except grpc.aio.AioRpcError as exc:
            if self._closed and exc.code() == grpc.StatusCode.CANCELLED:
                return
            raise TransportError(
                f"{category.value} stream from {self._address} failed: "
                f"{exc.code().name}: {exc.details()}"
            ) from exc
        finally:
            call.cancel()

    async def close(self) -> None:
        """Close the channel (idempotent)."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._channel.close()
        except Exception as exc:
            raise ShutdownError(f"Failed to close gRPC channel to {self._address}: {exc}") from exc
