"""Remote shell sessions used to run commands on managed hosts.

SSH sessions use an OpenSSH control master so every command reuses one
authenticated transport; local sessions run commands on this machine.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import psutil

from ..models.operation import Liveness
from .errors import CommandTimeoutError, ConnectionConfigError

logger = logging.getLogger(__name__)

# ssh exits with 255 when the transport itself failed
SSH_TRANSPORT_ERROR = 255


@dataclass
class CommandResult:
    """Outcome of one command on a host."""

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "code": self.exit_code,
            "duration": self.duration_ms,
        }


async def _communicate(process, timeout: float, started: float) -> CommandResult:
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandTimeoutError(f"Command timed out after {timeout}s")

    return CommandResult(
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        exit_code=process.returncode,
        duration_ms=int((time.monotonic() - started) * 1000),
    )


def parse_ps_output(result: CommandResult, pid: int) -> Liveness:
    """Interpret ``ps -p PID -o pid=``: exit 1 with no output means gone."""
    output = result.stdout.strip()
    if result.exit_code == 0 and str(pid) in output.split():
        return Liveness.ALIVE
    if result.exit_code == 1 and not output:
        return Liveness.DEAD
    return Liveness.ERROR


class SSHSession:
    """Session to a remote host through a persistent OpenSSH control socket."""

    def __init__(
        self,
        connection_id: str,
        hostname: str,
        username: str,
        ssh_key_path: Optional[str] = None,
        port: int = 22,
        control_dir: Optional[Path] = None,
        connect_timeout: float = 30.0,
        command_timeout: float = 30.0,
    ):
        self.connection_id = connection_id
        self.hostname = hostname
        self.username = username
        self.ssh_key_path = ssh_key_path
        self.port = port or 22
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.connected = False

        control_dir = Path(control_dir or Path.home() / ".ssh" / "command_center")
        control_dir.mkdir(parents=True, exist_ok=True)
        # Unix socket paths are length limited, keep the name short
        self.control_path = control_dir / f"cc-{connection_id[:12]}.sock"

    @property
    def target(self) -> str:
        return f"{self.username}@{self.hostname}"

    def _base_args(self) -> List[str]:
        args = [
            "ssh",
            "-p",
            str(self.port),
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-o",
            f"ConnectTimeout={int(self.connect_timeout)}",
            "-o",
            f"ControlPath={self.control_path}",
        ]
        if self.ssh_key_path:
            args.extend(["-i", self.ssh_key_path])
        return args

    async def _exec(self, args: List[str], timeout: float) -> CommandResult:
        started = time.monotonic()
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return await _communicate(process, timeout, started)

    async def open(self):
        """Start the control master in the background."""
        if self.ssh_key_path and not Path(self.ssh_key_path).exists():
            raise ConnectionConfigError(f"SSH key not found: {self.ssh_key_path}")

        args = self._base_args() + [
            "-o",
            "ControlMaster=yes",
            "-o",
            "ControlPersist=yes",
            "-f",
            "-N",
            self.target,
        ]
        result = await self._exec(args, timeout=self.connect_timeout + 5)
        if not result.success:
            raise ConnectionError(
                result.stderr.strip() or f"ssh exited with code {result.exit_code}"
            )

        self.connected = True
        logger.info(f"SSH session established: {self.connection_id} ({self.target})")

    async def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """Run a shell command on the host over the control socket."""
        args = self._base_args() + [self.target, command]
        return await self._exec(args, timeout=timeout or self.command_timeout)

    async def process_liveness(self, pid: int) -> Liveness:
        try:
            result = await self.run(f"ps -p {int(pid)} -o pid=")
        except (CommandTimeoutError, OSError) as e:
            logger.warning(f"Liveness probe for pid {pid} on {self.target} failed: {e}")
            return Liveness.ERROR

        if result.exit_code == SSH_TRANSPORT_ERROR:
            logger.warning(
                f"Liveness probe for pid {pid} on {self.target} lost transport: "
                f"{result.stderr.strip()}"
            )
            return Liveness.ERROR
        return parse_ps_output(result, pid)

    async def close(self):
        """Ask the control master to exit."""
        self.connected = False
        try:
            await self._exec(self._base_args() + ["-O", "exit", self.target], timeout=10)
        except (CommandTimeoutError, OSError) as e:
            logger.warning(f"Failed to close SSH control master for {self.target}: {e}")
        logger.info(f"SSH session closed: {self.connection_id}")


class LocalSession:
    """Session for operations running on this machine."""

    def __init__(self, connection_id: str, command_timeout: float = 30.0):
        self.connection_id = connection_id
        self.command_timeout = command_timeout
        self.connected = False

    async def open(self):
        self.connected = True
        logger.info(f"Local session established: {self.connection_id}")

    async def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        started = time.monotonic()
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=os.path.expanduser("~"),
        )
        return await _communicate(process, timeout or self.command_timeout, started)

    async def process_liveness(self, pid: int) -> Liveness:
        try:
            process = psutil.Process(int(pid))
            if process.status() == psutil.STATUS_ZOMBIE:
                return Liveness.DEAD
            return Liveness.ALIVE
        except psutil.NoSuchProcess:
            return Liveness.DEAD
        except psutil.AccessDenied:
            # Exists but owned by someone else
            return Liveness.ALIVE
        except (psutil.Error, OSError, ValueError) as e:
            logger.warning(f"Local liveness probe for pid {pid} failed: {e}")
            return Liveness.ERROR

    async def close(self):
        self.connected = False
        logger.info(f"Local session closed: {self.connection_id}")
