from __future__ import annotations

from pathlib import Path

import pytest

from armorlog.config import CONFIG_ENV, ObserverConfig
from armorlog.errors import ConfigFileError, InvalidFilterModeError
from armorlog.options import FilterMode


def test_defaults_when_no_config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.setattr("armorlog.config.DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")

    options = ObserverConfig.load().to_options()

    assert options.grpc is None
    assert options.log_path == "stdout"
    assert options.msg_path == "none"
    assert options.log_filter is FilterMode.POLICY
    assert options.limit == 0
    assert options.relay_labels == {"kubearmor-app": "kubearmor-relay"}


def test_load_yaml_file(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
armorlog:
  grpc: relay.kubearmor:32767
  log_filter: all
  json: true
  limit: 10
  filters:
    namespace: kube-system
    source: /usr/bin/curl
  relay:
    port: 32000
    labels:
      app: relay
  tunnel:
    ready_timeout: 5
    max_port_attempts: 3
""",
        encoding="utf-8",
    )

    options = ObserverConfig.load(path).to_options()

    assert options.grpc == "relay.kubearmor:32767"
    assert options.log_filter is FilterMode.ALL
    assert options.json_output is True
    assert options.limit == 10
    assert options.namespace == "kube-system"
    assert options.source == "/usr/bin/curl"
    assert options.operation == ""
    assert options.relay_port == 32000
    assert options.relay_labels == {"app": "relay"}
    assert options.tunnel_ready_timeout == 5.0
    assert options.max_port_attempts == 3


def test_overrides_win_and_none_is_ignored() -> None:
    config = ObserverConfig.from_dict({"limit": 4, "filters": {"namespace": "prod"}})

    options = config.to_options(limit=None, namespace="dev", log_path="none", msg_path="stdout")

    assert options.limit == 4
    assert options.namespace == "dev"
    assert options.messages_enabled
    assert options.log_path == "none"


def test_env_variable_names_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "env.yaml"
    path.write_text("grpc: from-env:1\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV, str(path))

    assert ObserverConfig.load().grpc == "from-env:1"


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError, match="file not found"):
        ObserverConfig.load(tmp_path / "nope.yaml")


@pytest.mark.parametrize("content", ["grpc: [unclosed\n", "- just\n- a list\n", "limit: many\n"])
def test_malformed_file_is_an_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigFileError):
        ObserverConfig.load(path)


def test_unknown_filter_mode_is_rejected() -> None:
    with pytest.raises(InvalidFilterModeError):
        ObserverConfig.from_dict({"log_filter": "everything"}).to_options()
