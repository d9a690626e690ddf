"""Per-run shared state."""

from __future__ import annotations

from dataclasses import dataclass, field

from .cancellation import CancellationToken, CompletionGate
from .client import TelemetryClient
from .filters import CompiledFilterSet
from .options import Options


def required_reports(options: Options) -> int:
    """Number of quota reports that complete the session (0 when unbounded)."""
    if not options.bounded or not options.logs_enabled:
        return 0
    mode = options.log_filter
    return int(mode.watches_alerts) + int(mode.watches_logs)


@dataclass
class SessionState:
    """State shared by the watchers and the coordinator of one observation run."""

    options: Options
    filters: CompiledFilterSet
    client: TelemetryClient
    token: CancellationToken = field(default_factory=CancellationToken)
    gate: CompletionGate | None = None

    def __post_init__(self) -> None:
        if self.gate is None:
            self.gate = CompletionGate(required_reports(self.options))

    @property
    def quota(self) -> int | None:
        return self.options.limit if self.options.bounded else None
