"""Observer error types with actionable messages."""


class ObserverError(Exception):
    """Base class for every error raised by the observer."""


class ConfigurationError(ObserverError, ValueError):
    """Base class for invalid options, filters and config files."""


class InvalidFilterError(ConfigurationError):
    """Raised when a filter string is not a valid regular expression."""

    def __init__(self, option: str, pattern: str, details: str) -> None:
        self.option = option
        self.pattern = pattern
        super().__init__(f"Invalid {option} filter {pattern!r}: {details}.")


class InvalidOutputError(ConfigurationError):
    """Raised when no output destination is enabled."""

    def __init__(self) -> None:
        super().__init__(
            "Both --msgPath and --logPath are 'none'. Enable at least one output "
            "(a file path or 'stdout')."
        )


class InvalidFilterModeError(ConfigurationError):
    """Raised when the log filter mode is not one of the known modes."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid --logFilter '{value}'. Allowed values: all, policy, system.")


class ConfigFileError(ConfigurationError):
    """Raised when the YAML config file cannot be read or parsed."""

    def __init__(self, path: str, details: str) -> None:
        self.path = path
        super().__init__(f"Config file error in {path}: {details}")


class DiscoveryError(ObserverError):
    """Raised when no relay pod matches the label selector."""

    def __init__(self, selector: str, details: str | None = None) -> None:
        self.selector = selector
        reason = details or "no matching pod"
        super().__init__(
            f"Relay pod lookup for selector '{selector}' failed: {reason}. Check that the "
            "relay is deployed, or pass --grpc / set KUBEARMOR_SERVICE."
        )


class TunnelError(ObserverError):
    """Raised when the local endpoint or port-forward cannot be established."""


class LivenessError(ObserverError):
    """Raised when the relay fails its health probe."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Failed to check the liveness of the gRPC server at {address}.")


class TransportError(ObserverError):
    """Raised when a watch stream fails mid-flight."""


class ShutdownError(ObserverError):
    """Raised when releasing the relay connection fails."""
