"""Observation session options."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ConfigurationError, InvalidFilterModeError, InvalidOutputError

if TYPE_CHECKING:
    from .output import EventSink

# Output destination markers
STDOUT = "stdout"
DISABLED = "none"

# Environment variable naming a relay address; skips discovery when set
SERVICE_ENV = "KUBEARMOR_SERVICE"


class FilterMode(str, Enum):
    """Which event categories a session watches."""

    ALL = "all"
    POLICY = "policy"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: str | FilterMode) -> FilterMode:
        try:
            return cls(value)
        except ValueError:
            raise InvalidFilterModeError(str(value)) from None

    @property
    def watches_alerts(self) -> bool:
        return self in (FilterMode.ALL, FilterMode.POLICY)

    @property
    def watches_logs(self) -> bool:
        return self in (FilterMode.ALL, FilterMode.SYSTEM)


@dataclass(frozen=True)
class Options:
    """Configuration for one observation session."""

    grpc: str | None = None
    msg_path: str = DISABLED
    log_path: str = STDOUT
    event_sink: EventSink | None = None
    message_sink: EventSink | None = None
    json_output: bool = False
    namespace: str = ""
    log_type: str = ""
    operation: str = ""
    container_name: str = ""
    pod_name: str = ""
    source: str = ""
    resource: str = ""
    log_filter: FilterMode = FilterMode.POLICY
    limit: int = 0
    relay_port: int = 32767
    relay_labels: dict[str, str] = field(
        default_factory=lambda: {"kubearmor-app": "kubearmor-relay"}
    )
    tunnel_ready_timeout: float = 30.0
    kubectl: str = "kubectl"
    max_port_attempts: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_filter", FilterMode.parse(self.log_filter))
        if self.limit < 0:
            raise ConfigurationError(f"Invalid --limit {self.limit}: must be 0 or greater.")

    @property
    def logs_enabled(self) -> bool:
        """True when alerts/logs have somewhere to go."""
        return self.event_sink is not None or self.log_path != DISABLED

    @property
    def messages_enabled(self) -> bool:
        return self.message_sink is not None or self.msg_path != DISABLED

    @property
    def bounded(self) -> bool:
        return self.limit > 0

    def validate(self) -> None:
        """Reject option combinations that cannot produce any output."""
        if not self.logs_enabled and not self.messages_enabled:
            raise InvalidOutputError()
