"""Background polling of running operations per connection.

Each monitored connection gets its own task that reconciles status and
refreshes progress of still-running operations from their log files.
"""

import asyncio
import logging
import shlex
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models.database import SessionLocal, get_session
from ..models.operation import Operation, OperationStatus
from ..utils.log_progress import parse_log_progress, progress_percent
from .connection_manager import ConnectionManager, connection_manager
from .errors import CommandCenterError, ConnectionUnavailableError
from .event_manager import EventManager, event_manager
from .reconciler import OperationReconciler, reconciler

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.5
LOG_TAIL_LINES = 50


class OperationMonitor:
    """Manages per-connection polling tasks."""

    def __init__(
        self,
        connections: ConnectionManager = connection_manager,
        status_reconciler: OperationReconciler = reconciler,
        session_factory=SessionLocal,
        events: EventManager = event_manager,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.connections = connections
        self.reconciler = status_reconciler
        self.session_factory = session_factory
        self.events = events
        self.poll_interval = poll_interval
        self.tasks: Dict[str, asyncio.Task] = {}

    def is_monitoring(self, connection_id: str) -> bool:
        task = self.tasks.get(connection_id)
        return task is not None and not task.done()

    def start_monitoring(self, connection_id: str) -> bool:
        """Start polling a connection. Returns False if already polling."""
        if self.is_monitoring(connection_id):
            logger.info(f"Already monitoring connection: {connection_id}")
            return False

        logger.info(f"Starting monitoring for connection: {connection_id}")
        self.tasks[connection_id] = asyncio.create_task(self._run(connection_id))
        return True

    async def stop_monitoring(self, connection_id: str) -> bool:
        task = self.tasks.pop(connection_id, None)
        if task is None:
            return False

        if task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        logger.info(f"Stopped monitoring connection: {connection_id}")
        return True

    async def stop_all(self):
        """Stop all monitoring (app shutdown)."""
        logger.info(f"Stopping all monitoring ({len(self.tasks)} connections)")
        tasks = list(self.tasks.values())
        self.tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, connection_id: str):
        while True:
            try:
                keep_going = await self.poll_once(connection_id)
                if not keep_going:
                    # Connection lost
                    self.tasks.pop(connection_id, None)
                    logger.info(f"Connection {connection_id} gone, monitoring stopped")
                    return
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                logger.info(f"Monitoring task for {connection_id} cancelled")
                raise
            except Exception as e:
                logger.error(f"Poll error for {connection_id}: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

    async def poll_once(self, connection_id: str) -> bool:
        """One polling tick. Returns False when the connection is gone."""
        if not self.connections.is_connected(connection_id):
            return False

        try:
            await self.reconciler.sync_operations(connection_id)
        except ConnectionUnavailableError:
            return False

        with get_session(self.session_factory) as db:
            targets = [
                (op.id, op.name, op.type, op.log_file)
                for op in db.query(Operation)
                .filter(
                    Operation.connection_id == connection_id,
                    Operation.status == OperationStatus.RUNNING.value,
                    Operation.log_file.isnot(None),
                )
                .all()
            ]

        for operation_id, name, op_type, log_file in targets:
            await self._refresh_progress(
                connection_id, operation_id, name, op_type, log_file
            )
        return True

    async def _refresh_progress(
        self,
        connection_id: str,
        operation_id: str,
        name: str,
        op_type: Optional[str],
        log_file: str,
    ):
        try:
            result = await self.connections.execute_command(
                connection_id,
                f"tail -{LOG_TAIL_LINES} {shlex.quote(log_file)} 2>/dev/null",
                record=False,
            )
        except CommandCenterError as e:
            logger.warning(f"Could not read log for operation {name}: {e}")
            return

        if not result.success or not result.stdout:
            return

        progress = parse_log_progress(result.stdout)
        if not progress:
            return

        updates = {}
        if "current" in progress:
            updates["progress_current"] = progress["current"]
            updates["progress_total"] = progress["total"]
            percent = progress_percent(progress["current"], progress["total"])
            if percent is not None:
                updates["progress"] = percent
        if progress.get("message"):
            updates["progress_message"] = progress["message"]
        if progress.get("metrics"):
            updates["metrics"] = progress["metrics"]

        try:
            with get_session(self.session_factory) as db:
                operation = db.get(Operation, operation_id)
                if operation is None or operation.status != OperationStatus.RUNNING.value:
                    return
                for field, value in updates.items():
                    setattr(operation, field, value)
                operation.updated_at = datetime.utcnow()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store progress for operation {operation_id}: {e}")
            return

        await self.events.send_operation_update(
            {
                "operationId": operation_id,
                "connectionId": connection_id,
                "name": name,
                "type": op_type,
                **updates,
                "statusChanged": False,
            }
        )


# Global monitor instance for app.py integration
operation_monitor = OperationMonitor()


def get_operation_monitor() -> OperationMonitor:
    """Dependency for FastAPI endpoints."""
    return operation_monitor
