"""Config file support for the observer CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigFileError
from .options import DISABLED, STDOUT, Options

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "armorlog"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
CONFIG_ENV = "ARMORLOG_CONFIG"


@dataclass
class FilterConfig:
    """Regex filters applied to alerts and logs."""

    namespace: str = ""
    log_type: str = ""
    operation: str = ""
    container_name: str = ""
    pod_name: str = ""
    source: str = ""
    resource: str = ""


@dataclass
class RelayConfig:
    """Where to find the relay pod for port-forwarding."""

    port: int = 32767
    labels: dict[str, str] = field(default_factory=lambda: {"kubearmor-app": "kubearmor-relay"})


@dataclass
class TunnelConfig:
    """kubectl port-forward settings."""

    kubectl: str = "kubectl"
    ready_timeout: float = 30.0
    max_port_attempts: int | None = None


@dataclass
class ObserverConfig:
    """Main observer configuration."""

    grpc: str | None = None
    msg_path: str = DISABLED
    log_path: str = STDOUT
    log_filter: str = "policy"
    json: bool = False
    limit: int = 0
    filters: FilterConfig = field(default_factory=FilterConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    tunnel: TunnelConfig = field(default_factory=TunnelConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObserverConfig:
        """Create config from dictionary (e.g., parsed YAML)."""
        obs_data = data.get("armorlog", data) or {}

        config = cls(
            grpc=obs_data.get("grpc"),
            msg_path=str(obs_data.get("msg_path", DISABLED)),
            log_path=str(obs_data.get("log_path", STDOUT)),
            log_filter=str(obs_data.get("log_filter", "policy")),
            json=bool(obs_data.get("json", False)),
            limit=int(obs_data.get("limit", 0)),
        )

        if "filters" in obs_data:
            filter_data = obs_data["filters"] or {}
            config.filters = FilterConfig(
                **{
                    name: str(filter_data.get(name, ""))
                    for name in FilterConfig.__dataclass_fields__
                }
            )

        if "relay" in obs_data:
            relay_data = obs_data["relay"] or {}
            config.relay = RelayConfig(
                port=int(relay_data.get("port", 32767)),
                labels={
                    str(k): str(v)
                    for k, v in (
                        relay_data.get("labels") or {"kubearmor-app": "kubearmor-relay"}
                    ).items()
                },
            )

        if "tunnel" in obs_data:
            tunnel_data = obs_data["tunnel"] or {}
            attempts = tunnel_data.get("max_port_attempts")
            config.tunnel = TunnelConfig(
                kubectl=str(tunnel_data.get("kubectl", "kubectl")),
                ready_timeout=float(tunnel_data.get("ready_timeout", 30.0)),
                max_port_attempts=int(attempts) if attempts is not None else None,
            )

        return config

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> ObserverConfig:
        """Load configuration from a file.

        Priority:
        1. Explicit config_path argument
        2. ARMORLOG_CONFIG environment variable
        3. Default config file (~/.config/armorlog/config.yaml), if present
        """
        explicit = config_path or os.getenv(CONFIG_ENV)
        path = Path(explicit).expanduser() if explicit else DEFAULT_CONFIG_FILE

        if not path.exists():
            if explicit:
                raise ConfigFileError(str(path), "file not found")
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigFileError(str(path), str(exc)) from exc
        if not isinstance(data, dict):
            raise ConfigFileError(str(path), "expected a mapping at the top level")

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError, AttributeError) as exc:
            raise ConfigFileError(str(path), str(exc)) from exc

    def to_options(self, **overrides: Any) -> Options:
        """Build session Options; ``None`` overrides keep the config value."""
        values: dict[str, Any] = {
            "grpc": self.grpc,
            "msg_path": self.msg_path,
            "log_path": self.log_path,
            "log_filter": self.log_filter,
            "json_output": self.json,
            "limit": self.limit,
            "relay_port": self.relay.port,
            "relay_labels": dict(self.relay.labels),
            "kubectl": self.tunnel.kubectl,
            "tunnel_ready_timeout": self.tunnel.ready_timeout,
            "max_port_attempts": self.tunnel.max_port_attempts,
        }
        for name in FilterConfig.__dataclass_fields__:
            values[name] = getattr(self.filters, name)
        values.update({key: value for key, value in overrides.items() if value is not None})
        return Options(**values)
