"""Connection manager - live sessions and command execution per host.

Shared by every entry point (HTTP routes, monitor, reconciler) so command
notifications are emitted in exactly one place.
"""

import asyncio
import logging
import os
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models.connection import DGXConnection
from ..models.database import SessionLocal, get_session
from ..models.operation import Liveness
from .errors import (
    CommandTimeoutError,
    ConnectionConfigError,
    ConnectionExistsError,
    NotConnectedError,
)
from .event_manager import EventManager, event_manager
from .sessions import CommandResult, LocalSession, SSHSession

logger = logging.getLogger(__name__)

HISTORY_SIZE = 50
COMMAND_PREVIEW_LENGTH = 100


class ConnectionManager:
    """Owns the live session of every connected host."""

    def __init__(
        self,
        session_factory=SessionLocal,
        events: EventManager = event_manager,
        command_timeout: float = 30.0,
        connect_timeout: float = 30.0,
        control_dir: Optional[Path] = None,
        session_builder: Optional[Callable[[DGXConnection], Any]] = None,
    ):
        self.session_factory = session_factory
        self.events = events
        self.command_timeout = command_timeout
        self.connect_timeout = connect_timeout
        self.control_dir = control_dir
        self.session_builder = session_builder or self._build_session
        self.sessions: Dict[str, Any] = {}
        self.history: Deque[Dict[str, Any]] = deque(maxlen=HISTORY_SIZE)

    def _build_session(self, connection: DGXConnection):
        if connection.is_local:
            return LocalSession(connection.id, command_timeout=self.command_timeout)
        return SSHSession(
            connection_id=connection.id,
            hostname=connection.hostname,
            username=connection.username,
            ssh_key_path=(
                os.path.expanduser(connection.ssh_key_path)
                if connection.ssh_key_path
                else None
            ),
            port=connection.port,
            control_dir=self.control_dir,
            connect_timeout=self.connect_timeout,
            command_timeout=self.command_timeout,
        )

    def _set_active(self, connection_id: str, active: bool):
        now = datetime.utcnow()
        try:
            with get_session(self.session_factory) as db:
                connection = db.get(DGXConnection, connection_id)
                if connection is None:
                    return
                connection.is_active = active
                connection.updated_at = now
                if active:
                    connection.last_connected_at = now
        except SQLAlchemyError as e:
            logger.error(f"Failed to record session state for {connection_id}: {e}")

    async def connect(self, connection: DGXConnection) -> Dict[str, Any]:
        """Open a session for a stored connection.

        Raises:
            ConnectionConfigError: Required parameters or key file missing
            ConnectionExistsError: A live session is already open
            ConnectionError: The host refused or could not be reached
        """
        if not connection.hostname or not connection.username:
            raise ConnectionConfigError("Missing required connection parameters")

        existing = self.sessions.get(connection.id)
        if existing is not None:
            if existing.connected:
                raise ConnectionExistsError(
                    f"Connection '{connection.id}' already exists"
                )
            # Clean up stale session
            await existing.close()
            del self.sessions[connection.id]

        session = self.session_builder(connection)
        try:
            await asyncio.wait_for(session.open(), timeout=self.connect_timeout + 10)
        except asyncio.TimeoutError:
            raise ConnectionError(
                f"Connection timeout ({int(self.connect_timeout)}s)"
            ) from None

        self.sessions[connection.id] = session
        self._set_active(connection.id, True)

        logger.info(
            f"Connection established: {connection.id} "
            f"({connection.username}@{connection.hostname})"
        )
        await self.events.send_connection_update(
            {"connection_id": connection.id, "connected": True}
        )
        return {"connectionId": connection.id}

    async def disconnect(self, connection_id: str):
        session = self.sessions.pop(connection_id, None)
        if session is None:
            raise NotConnectedError(connection_id)

        await session.close()
        self._set_active(connection_id, False)

        logger.info(f"Connection closed: {connection_id}")
        await self.events.send_connection_update(
            {"connection_id": connection_id, "connected": False}
        )

    def is_connected(self, connection_id: str) -> bool:
        session = self.sessions.get(connection_id)
        return bool(session is not None and session.connected)

    def connected_ids(self) -> List[str]:
        return [cid for cid, session in self.sessions.items() if session.connected]

    def get_status(self, connection_id: Optional[str] = None) -> Dict[str, Any]:
        """Status of one connection, or of the first live one when no id is given."""
        if connection_id:
            return {
                "connectionId": connection_id,
                "connected": self.is_connected(connection_id),
            }

        for cid in self.connected_ids():
            return {"connectionId": cid, "connected": True}
        return {"connected": False}

    async def execute_command(
        self,
        connection_id: str,
        command: str,
        record: bool = True,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """Run a command on a connected host.

        When ``record`` is true the command is added to the history and a
        single ``command_executed`` event is published.

        Raises:
            NotConnectedError: No live session
            CommandTimeoutError: The command exceeded its deadline
        """
        if not self.is_connected(connection_id):
            raise NotConnectedError(connection_id)

        started_at = datetime.utcnow()
        result = await self.sessions[connection_id].run(command, timeout=timeout)

        if record:
            entry = {
                "connectionId": connection_id,
                "command": command[:COMMAND_PREVIEW_LENGTH],
                "startedAt": started_at.isoformat() + "Z",
                "endedAt": datetime.utcnow().isoformat() + "Z",
                "duration": result.duration_ms,
                "exitCode": result.exit_code,
                "success": result.success,
            }
            self.history.append(entry)
            await self.events.send_command_executed(entry)

        return result

    async def check_process(self, connection_id: str, pid: int) -> Liveness:
        """Liveness primitive: alive, dead, or error when it cannot be told."""
        session = self.sessions.get(connection_id)
        if session is None or not session.connected:
            return Liveness.ERROR

        try:
            return await session.process_liveness(pid)
        except (CommandTimeoutError, OSError) as e:
            logger.warning(f"Liveness check for pid {pid} on {connection_id} failed: {e}")
            return Liveness.ERROR

    def command_history(self) -> List[Dict[str, Any]]:
        return list(self.history)

    async def disconnect_all(self):
        """Close every session (app shutdown)."""
        logger.info(f"Disconnecting {len(self.sessions)} connections...")
        for connection_id, session in list(self.sessions.items()):
            try:
                await session.close()
            except Exception as e:
                logger.error(f"Error disconnecting {connection_id}: {e}")
        self.sessions.clear()
        self.reset_connection_states()

    def reset_connection_states(self):
        """Mark every stored connection inactive (startup and shutdown)."""
        try:
            with get_session(self.session_factory) as db:
                db.query(DGXConnection).update({DGXConnection.is_active: False})
            logger.info("Connection states reset")
        except SQLAlchemyError as e:
            logger.error(f"Failed to reset connection states: {e}")


# Global connection manager instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Dependency for FastAPI endpoints."""
    return connection_manager
