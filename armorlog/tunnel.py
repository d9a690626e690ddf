"""Relay discovery and port-forwarding."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .endpoint import EndpointAllocator
from .errors import DiscoveryError, TunnelError

logger = logging.getLogger(__name__)

READY_MARKER = "Forwarding from"


@dataclass
class EndpointLease:
    """Local/remote port pair and the pod it forwards to.

    Filled in as discovery progresses: pod first, then the local port.
    """

    local_port: int
    remote_port: int
    match_labels: dict[str, str] = field(default_factory=dict)
    namespace: str = ""
    pod_name: str = ""

    @property
    def label_selector(self) -> str:
        return ",".join(f"{key}={value}" for key, value in self.match_labels.items())

    @property
    def address(self) -> str:
        return f"localhost:{self.local_port}"


def load_core_v1() -> Any:
    """CoreV1Api from the local kubeconfig, falling back to in-cluster config."""
    try:
        config.load_kube_config()
    except config.ConfigException:
        config.load_incluster_config()
    return client.CoreV1Api()


class PodLocator:
    """Resolves the relay pod for a lease by label selector."""

    def __init__(self, core_v1: Any = None) -> None:
        self._core_v1 = core_v1

    @property
    def core_v1(self) -> Any:
        if self._core_v1 is None:
            try:
                self._core_v1 = load_core_v1()
            except config.ConfigException as exc:
                raise DiscoveryError("", f"no usable kubeconfig ({exc})") from exc
        return self._core_v1

    def locate(self, lease: EndpointLease) -> EndpointLease:
        """Fill ``pod_name`` and ``namespace`` from the first matching pod."""
        selector = lease.label_selector
        try:
            if lease.namespace:
                pods = self.core_v1.list_namespaced_pod(
                    namespace=lease.namespace, label_selector=selector
                )
            else:
                pods = self.core_v1.list_pod_for_all_namespaces(label_selector=selector)
        except ApiException as exc:
            raise DiscoveryError(selector, f"API error {exc.status} {exc.reason}") from exc

        if not pods.items:
            raise DiscoveryError(selector)
        pod = pods.items[0]
        lease.pod_name = pod.metadata.name
        lease.namespace = pod.metadata.namespace
        logger.debug("Found relay pod %s/%s", lease.namespace, lease.pod_name)
        return lease


class TunnelProvider(Protocol):
    """Bridges ``lease.local_port`` to the pod's ``lease.remote_port``."""

    async def open(self, lease: EndpointLease) -> None: ...

    async def close(self) -> None: ...


class KubectlTunnel:
    """Port-forward through a ``kubectl port-forward`` subprocess.

    ``open`` returns once kubectl reports it is forwarding and raises
    ``TunnelError`` if kubectl exits first or the ready timeout elapses.
    """

    def __init__(self, kubectl: str = "kubectl", *, ready_timeout: float = 30.0) -> None:
        self.kubectl = kubectl
        self.ready_timeout = ready_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._drain_task: asyncio.Task | None = None
        self._output: deque[str] = deque(maxlen=20)

    def command(self, lease: EndpointLease) -> list[str]:
        return [
            self.kubectl,
            "port-forward",
            "-n",
            lease.namespace,
            f"pod/{lease.pod_name}",
            f"{lease.local_port}:{lease.remote_port}",
            "--address",
            "127.0.0.1",
        ]

    async def open(self, lease: EndpointLease) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command(lease),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise TunnelError(f"Could not start {self.kubectl}: {exc}") from exc

        try:
            await asyncio.wait_for(self._wait_ready(), timeout=self.ready_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise TunnelError(
                f"Port-forward to {lease.namespace}/{lease.pod_name} was not ready "
                f"after {self.ready_timeout:g}s"
            ) from None
        except TunnelError:
            await self.close()
            raise

        self._drain_task = asyncio.create_task(self._drain())
        logger.info(
            "Forwarding localhost:%d to %s/%s:%d",
            lease.local_port,
            lease.namespace,
            lease.pod_name,
            lease.remote_port,
        )

    async def _wait_ready(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        while True:
            raw = await self._process.stdout.readline()
            if not raw:
                await self._process.wait()
                details = " ".join(self._output) or f"exit code {self._process.returncode}"
                raise TunnelError(f"Could not do port-forward: {details}")
            line = raw.decode(errors="replace").strip()
            self._output.append(line)
            if READY_MARKER in line:
                return

    async def _drain(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        while True:
            raw = await self._process.stdout.readline()
            if not raw:
                return
            logger.debug("kubectl: %s", raw.decode(errors="replace").rstrip())

    async def close(self) -> None:
        """Stop kubectl (idempotent)."""
        process, self._process = self._process, None
        drain_task, self._drain_task = self._drain_task, None
        if drain_task is not None:
            drain_task.cancel()
            await asyncio.gather(drain_task, return_exceptions=True)
        if process is None or process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()


async def initiate_port_forward(
    local_port: int,
    remote_port: int,
    match_labels: dict[str, str],
    *,
    locator: PodLocator,
    allocator: EndpointAllocator,
    tunnel: TunnelProvider,
) -> EndpointLease:
    """Find the relay pod, pick a free local port and open the tunnel."""
    lease = EndpointLease(
        local_port=local_port, remote_port=remote_port, match_labels=dict(match_labels)
    )
    await asyncio.to_thread(locator.locate, lease)
    lease.local_port = allocator.allocate(lease.local_port)
    await tunnel.open(lease)
    return lease
