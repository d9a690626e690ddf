"""armorlog: observe KubeArmor alerts and logs from outside the cluster."""

__version__ = "0.1.0"

from .cancellation import CancellationToken, CompletionGate
from .controller import ObserveResult, ObserverController, start_observer
from .endpoint import EndpointAllocator
from .errors import (
    ConfigurationError,
    DiscoveryError,
    InvalidFilterError,
    LivenessError,
    ObserverError,
    ShutdownError,
    TransportError,
    TunnelError,
)
from .events import EventCategory, EventRecord
from .filters import CompiledFilterSet, compile_filters
from .options import FilterMode, Options
from .output import CallbackSink, QueueSink
from .shutdown import ShutdownCoordinator, ShutdownState

__all__ = [
    "__version__",
    "CallbackSink",
    "CancellationToken",
    "CompiledFilterSet",
    "CompletionGate",
    "ConfigurationError",
    "DiscoveryError",
    "EndpointAllocator",
    "EventCategory",
    "EventRecord",
    "FilterMode",
    "InvalidFilterError",
    "LivenessError",
    "ObserveResult",
    "ObserverController",
    "ObserverError",
    "Options",
    "QueueSink",
    "ShutdownCoordinator",
    "ShutdownError",
    "ShutdownState",
    "TransportError",
    "TunnelError",
    "compile_filters",
    "start_observer",
]
