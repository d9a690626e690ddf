"""Free local TCP port discovery for the relay port-forward."""

from __future__ import annotations

import logging
import platform
import secrets
import socket
from collections.abc import Callable

from .errors import TunnelError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 32767
FALLBACK_BASE = 32768
FALLBACK_SPAN = 132  # fallback ports are 32768..32899


class EndpointAllocator:
    """Finds a local port that is free right now.

    The port is probed by binding and immediately closing a listener; the
    tunnel provider rebinds it. Busy ports are replaced by a random port from
    the fallback range until one binds. ``max_attempts=None`` retries forever.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        *,
        max_attempts: int | None = None,
        randbelow: Callable[[int], int] = secrets.randbelow,
    ) -> None:
        self.host = host
        self.max_attempts = max_attempts
        self._randbelow = randbelow

    def allocate(self, preferred: int = DEFAULT_PORT) -> int:
        port = preferred
        attempts = 0
        while True:
            attempts += 1
            if self._is_free(port):
                logger.info("Local port to be used for port forwarding: %d", port)
                return port
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise TunnelError(
                    f"No free local port found after {attempts} attempts "
                    f"(tried {preferred} and {FALLBACK_BASE}-{FALLBACK_BASE + FALLBACK_SPAN - 1})."
                )
            logger.debug("Local port %d is busy", port)
            port = FALLBACK_BASE + self._random_offset()

    def _is_free(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            # Match kubectl's listener: ports in TIME_WAIT still count as free
            if platform.system() != "Windows":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.host, port))
                sock.listen(1)
            except OSError:
                return False
        return True

    def _random_offset(self) -> int:
        try:
            return self._randbelow(FALLBACK_SPAN)
        except Exception as exc:
            raise TunnelError("Unable to generate random integer for port") from exc
