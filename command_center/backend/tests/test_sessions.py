import asyncio
import os
import subprocess

import pytest

from command_center.backend.models import Liveness
from command_center.backend.services.errors import CommandTimeoutError, ConnectionConfigError
from command_center.backend.services.sessions import (
    CommandResult,
    LocalSession,
    SSHSession,
    parse_ps_output,
)


def _result(stdout="", stderr="", code=0):
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=code, duration_ms=3)


class TestParsePsOutput:
    def test_pid_listed(self):
        assert parse_ps_output(_result("  4242\n"), 4242) is Liveness.ALIVE

    def test_no_such_process(self):
        assert parse_ps_output(_result("", code=1), 4242) is Liveness.DEAD

    def test_exit_one_is_dead_only_without_output(self):
        assert parse_ps_output(_result("", "ps: bad option", code=1), 4242) is Liveness.DEAD
        assert parse_ps_output(_result("garbage", code=1), 4242) is Liveness.ERROR

    def test_other_pid_is_inconclusive(self):
        assert parse_ps_output(_result("42420\n"), 4242) is Liveness.ERROR

    def test_unexpected_exit_code(self):
        assert parse_ps_output(_result("", code=127), 4242) is Liveness.ERROR


def test_command_result_dict():
    result = _result("out", "err", 3)
    assert not result.success
    assert result.to_dict() == {"stdout": "out", "stderr": "err", "code": 3, "duration": 3}


class TestSSHSession:
    def _session(self, tmp_path, **kwargs):
        return SSHSession(
            connection_id="0123456789abcdef-long-id",
            hostname="dgx.local",
            username="ubuntu",
            control_dir=tmp_path,
            **kwargs,
        )

    def test_control_socket_name_is_short(self, tmp_path):
        session = self._session(tmp_path)
        assert session.control_path == tmp_path / "cc-0123456789ab.sock"
        assert session.target == "ubuntu@dgx.local"

    def test_base_args_include_key_and_port(self, tmp_path):
        session = self._session(tmp_path, ssh_key_path="/keys/id", port=2222)
        args = session._base_args()
        assert args[:3] == ["ssh", "-p", "2222"]
        assert "BatchMode=yes" in args
        assert args[-2:] == ["-i", "/keys/id"]

    def test_missing_key_is_a_config_error(self, tmp_path):
        session = self._session(tmp_path, ssh_key_path=str(tmp_path / "missing"))
        with pytest.raises(ConnectionConfigError):
            asyncio.run(session.open())
        assert session.connected is False

    def test_transport_failure_is_error(self, tmp_path, monkeypatch):
        session = self._session(tmp_path)

        async def lost(command, timeout=None):
            return _result("", "Connection reset by peer", 255)

        monkeypatch.setattr(session, "run", lost)
        assert asyncio.run(session.process_liveness(10)) is Liveness.ERROR

    def test_timeout_is_error(self, tmp_path, monkeypatch):
        session = self._session(tmp_path)

        async def slow(command, timeout=None):
            raise CommandTimeoutError("timed out")

        monkeypatch.setattr(session, "run", slow)
        assert asyncio.run(session.process_liveness(10)) is Liveness.ERROR

    def test_probe_command(self, tmp_path, monkeypatch):
        session = self._session(tmp_path)
        seen = []

        async def record(command, timeout=None):
            seen.append(command)
            return _result("", code=1)

        monkeypatch.setattr(session, "run", record)
        assert asyncio.run(session.process_liveness(77)) is Liveness.DEAD
        assert seen == ["ps -p 77 -o pid="]


class TestLocalSession:
    def test_run(self):
        session = LocalSession("local")
        result = asyncio.run(session.run("echo hello"))
        assert result.success
        assert result.stdout.strip() == "hello"

    def test_run_timeout(self):
        session = LocalSession("local")
        with pytest.raises(CommandTimeoutError):
            asyncio.run(session.run("sleep 5", timeout=0.2))

    def test_own_process_is_alive(self):
        session = LocalSession("local")
        assert asyncio.run(session.process_liveness(os.getpid())) is Liveness.ALIVE

    def test_exited_process_is_dead(self):
        child = subprocess.Popen(["true"])
        child.wait()
        session = LocalSession("local")
        assert asyncio.run(session.process_liveness(child.pid)) is Liveness.DEAD
