"""Session shutdown: signal handling, completion wait and one-time release."""

from __future__ import annotations

import asyncio
import logging
import platform
import signal
from collections.abc import Iterable
from enum import Enum

from .errors import ShutdownError
from .session import SessionState

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[int, ...] = tuple(
    getattr(signal, name)
    for name in ("SIGHUP", "SIGINT", "SIGTERM", "SIGQUIT")
    if hasattr(signal, name)
)


class ShutdownState(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """Turns signals, programmatic stops and quota completion into one stop.

    Usage::

        coordinator = ShutdownCoordinator(session)
        coordinator.install_signal_handlers()
        coordinator.attach(tasks)
        reason = await coordinator.wait()
        await coordinator.release()
    """

    def __init__(self, session: SessionState, *, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        self.session = session
        self.state = ShutdownState.RUNNING
        self.stop_reason: str | None = None
        self.shutdown_error: ShutdownError | None = None
        self._signals = tuple(signals)
        self._installed: list[int] = []
        self._tasks: list[asyncio.Task] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        self._release_lock = asyncio.Lock()

    def attach(self, tasks: Iterable[asyncio.Task]) -> None:
        """Register watcher tasks to wait on and stop during release."""
        self._tasks.extend(tasks)

    def install_signal_handlers(self) -> None:
        self._loop = asyncio.get_running_loop()
        if platform.system() == "Windows":
            return
        for sig in self._signals:
            self._loop.add_signal_handler(sig, self._on_signal, sig)
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        if self._loop is None:
            return
        while self._installed:
            self._loop.remove_signal_handler(self._installed.pop())

    def _on_signal(self, sig: int) -> None:
        name = signal.Signals(sig).name
        logger.info("Received %s, stopping", name)
        self.request_stop(f"signal:{name}")

    def request_stop(self, reason: str = "requested") -> None:
        """Ask the session to stop; repeated requests keep the first reason."""
        self.session.token.cancel(reason)

    def request_stop_threadsafe(self, reason: str = "requested") -> None:
        """``request_stop`` for callers outside the event loop thread."""
        if self._loop is None or self._loop.is_closed():
            self.request_stop(reason)
            return
        self._loop.call_soon_threadsafe(self.request_stop, reason)

    async def wait(self) -> str:
        """Block until a stop is requested, the quota is met or all watchers exit."""
        token = self.session.token
        gate = self.session.gate
        waiters = [asyncio.ensure_future(token.wait())]
        if self.session.options.bounded and gate.required > 0:
            waiters.append(asyncio.ensure_future(gate.wait()))
        if self._tasks:
            waiters.append(asyncio.ensure_future(asyncio.wait(self._tasks)))

        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if token.is_cancelled():
            reason = token.reason or "requested"
        elif gate.required > 0 and gate.is_complete():
            reason = "quota"
        else:
            reason = "watchers_finished"
        if self.state is ShutdownState.RUNNING:
            self.state = ShutdownState.STOPPING
            self.stop_reason = reason
        return self.stop_reason or reason

    async def release(self) -> None:
        """Cancel the session, stop watchers and close the client, once."""
        async with self._release_lock:
            if self.state is ShutdownState.STOPPED:
                return
            self.state = ShutdownState.STOPPING
            if self.stop_reason is None:
                self.stop_reason = self.session.token.reason or "released"
            self.session.token.cancel("shutdown")

            for task in self._tasks:
                if not task.done():
                    task.cancel()
            if self._tasks:
                outcomes = await asyncio.gather(*self._tasks, return_exceptions=True)
                for task, outcome in zip(self._tasks, outcomes):
                    if isinstance(outcome, Exception):
                        logger.error("Watcher %s failed: %s", task.get_name(), outcome)

            logger.info("Releasing gRPC client")
            try:
                await self.session.client.close()
            except ShutdownError as exc:
                logger.error("%s", exc)
                self.shutdown_error = exc
            except Exception as exc:
                logger.error("Failed to release gRPC client: %s", exc)
                self.shutdown_error = ShutdownError(str(exc))
            finally:
                self.remove_signal_handlers()
                self.state = ShutdownState.STOPPED
