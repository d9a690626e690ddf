"""Observation session orchestration."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from rich.console import Console

from .client import GrpcTelemetryClient, TelemetryClient
from .endpoint import EndpointAllocator
from .errors import LivenessError, ShutdownError
from .events import EventCategory
from .filters import compile_filters
from .options import SERVICE_ENV, Options
from .output import EventSink, open_sink
from .session import SessionState
from .shutdown import DEFAULT_SIGNALS, ShutdownCoordinator
from .tunnel import EndpointLease, KubectlTunnel, PodLocator, TunnelProvider, initiate_port_forward
from .watcher import EventWatcher, WatcherResult

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], TelemetryClient]


@dataclass
class ObserveResult:
    """Outcome of one observation session."""

    address: str
    stop_reason: str
    watchers: list[WatcherResult] = field(default_factory=list)
    shutdown_error: ShutdownError | None = None

    def forwarded(self, category: EventCategory | str) -> int:
        category = EventCategory(category)
        return sum(r.forwarded for r in self.watchers if r.category is category)


class ObserverController:
    """Runs one observation session from address resolution to teardown.

    Collaborators are injectable so sessions can run against fake relays
    and clusters; the defaults talk to a real cluster.
    """

    def __init__(
        self,
        options: Options,
        *,
        client_factory: ClientFactory = GrpcTelemetryClient,
        locator: PodLocator | None = None,
        allocator: EndpointAllocator | None = None,
        tunnel: TunnelProvider | None = None,
        console: Console | None = None,
        environ: Mapping[str, str] | None = None,
        signals: tuple[int, ...] = DEFAULT_SIGNALS,
    ) -> None:
        self.options = options
        self._client_factory = client_factory
        self._locator = locator
        self._allocator = allocator
        self._tunnel = tunnel
        self._console = console or Console()
        self._environ = os.environ if environ is None else environ
        self._signals = signals
        self.lease: EndpointLease | None = None
        self.coordinator: ShutdownCoordinator | None = None
        self._pending_stop: str | None = None

    async def resolve_address(self) -> str:
        """Explicit address, then the environment, then a port-forward."""
        if self.options.grpc:
            return self.options.grpc
        env_address = self._environ.get(SERVICE_ENV)
        if env_address:
            return env_address

        if self._tunnel is None:
            self._tunnel = KubectlTunnel(
                self.options.kubectl, ready_timeout=self.options.tunnel_ready_timeout
            )
        self.lease = await initiate_port_forward(
            self.options.relay_port,
            self.options.relay_port,
            self.options.relay_labels,
            locator=self._locator or PodLocator(),
            allocator=self._allocator
            or EndpointAllocator(max_attempts=self.options.max_port_attempts),
            tunnel=self._tunnel,
        )
        return self.lease.address

    def _open_sinks(self) -> dict[EventCategory, EventSink]:
        options = self.options
        sinks: dict[EventCategory, EventSink] = {}
        log_sink = options.event_sink or open_sink(
            options.log_path, self._console, json_output=options.json_output
        )
        if log_sink is not None:
            if options.log_filter.watches_alerts:
                sinks[EventCategory.ALERT] = log_sink
            if options.log_filter.watches_logs:
                sinks[EventCategory.LOG] = log_sink
        msg_sink = options.message_sink or open_sink(
            options.msg_path, self._console, json_output=options.json_output
        )
        if msg_sink is not None:
            sinks[EventCategory.MESSAGE] = msg_sink
        return sinks

    async def run(self) -> ObserveResult:
        """Observe until stopped; startup errors propagate before any watcher runs."""
        self.options.validate()
        filters = compile_filters(self.options)

        try:
            address = await self.resolve_address()
            client = self._client_factory(address)
        except BaseException:
            await self._close_tunnel()
            raise
        logger.info("Created a gRPC client (%s)", address)

        session = SessionState(options=self.options, filters=filters, client=client)
        coordinator = ShutdownCoordinator(session, signals=self._signals)
        self.coordinator = coordinator

        try:
            if not await client.health_check():
                raise LivenessError(address)
        except BaseException:
            await coordinator.release()
            await self._close_tunnel()
            raise
        logger.info("Checked the liveness of the gRPC server")

        sinks = self._open_sinks()
        watchers = [
            EventWatcher(session, category, sink) for category, sink in sinks.items()
        ]
        try:
            coordinator.install_signal_handlers()
            if self._pending_stop is not None:
                coordinator.request_stop(self._pending_stop)
            tasks = []
            for watcher in watchers:
                tasks.append(
                    asyncio.create_task(
                        watcher.run(), name=f"armorlog-watch-{watcher.category.value}"
                    )
                )
                logger.info("Started to watch %ss", watcher.category.value)
            coordinator.attach(tasks)
            reason = await coordinator.wait()
        finally:
            await coordinator.release()
            for sink in {id(sink): sink for sink in sinks.values()}.values():
                sink.close()
            await self._close_tunnel()

        return ObserveResult(
            address=address,
            stop_reason=reason,
            watchers=[w.result for w in watchers if w.result is not None],
            shutdown_error=coordinator.shutdown_error,
        )

    def stop(self, reason: str = "requested") -> None:
        """Request a stop from any thread; coalesces with signal-triggered stops."""
        if self.coordinator is None:
            self._pending_stop = reason
            return
        self.coordinator.request_stop_threadsafe(reason)

    async def _close_tunnel(self) -> None:
        if self._tunnel is not None and self.lease is not None:
            await self._tunnel.close()
            self.lease = None


async def start_observer(options: Options, **kwargs) -> ObserveResult:
    """Run an observation session with default collaborators."""
    return await ObserverController(options, **kwargs).run()
