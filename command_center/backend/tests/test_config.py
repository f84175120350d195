import pytest
from pydantic import ValidationError

from command_center.backend.core.config import (
    ServiceConfiguration,
    load_connections_file,
    seed_connections,
)
from command_center.backend.models import DGXConnection

CONNECTIONS_YAML = """
connections:
  - name: Spark
    hostname: 10.0.0.5
    username: ubuntu
    ssh_key_path: ~/.ssh/id_ed25519
  - name: Station
    hostname: dgx-station
    username: lab
    port: 2222
  - name: Broken
    hostname: nowhere
"""


def test_defaults(monkeypatch):
    for name in ServiceConfiguration.model_fields:
        monkeypatch.delenv(f"COMMAND_CENTER_{name.upper()}", raising=False)
    config = ServiceConfiguration.from_env()
    assert config.sync_concurrency == 4
    assert config.poll_interval == 2.5
    assert config.api_key is None


def test_environment_and_overrides(monkeypatch):
    monkeypatch.setenv("COMMAND_CENTER_SYNC_CONCURRENCY", "8")
    monkeypatch.setenv("COMMAND_CENTER_POLL_INTERVAL", "10")
    config = ServiceConfiguration.from_env(poll_interval=1.0, api_key=None)
    assert config.sync_concurrency == 8
    assert config.poll_interval == 1.0


def test_invalid_values_are_rejected(monkeypatch):
    monkeypatch.setenv("COMMAND_CENTER_SYNC_CONCURRENCY", "0")
    with pytest.raises(ValidationError):
        ServiceConfiguration.from_env()


def test_load_connections_file_skips_invalid_entries(tmp_path):
    path = tmp_path / "connections.yaml"
    path.write_text(CONNECTIONS_YAML)

    connections = load_connections_file(str(path))

    assert [c.name for c in connections] == ["Spark", "Station"]
    assert connections[0].port == 22
    assert connections[1].port == 2222


def test_seed_connections_is_idempotent(tmp_path, session_factory):
    path = tmp_path / "connections.yaml"
    path.write_text(CONNECTIONS_YAML)

    assert seed_connections(str(path), session_factory) == 2
    assert seed_connections(str(path), session_factory) == 0

    db = session_factory()
    try:
        assert db.query(DGXConnection).count() == 2
    finally:
        db.close()


def test_seed_missing_file(tmp_path, session_factory):
    assert seed_connections(str(tmp_path / "absent.yaml"), session_factory) == 0
