"""Operation status reconciliation.

Local operation records only learn that a remote process died by polling.
A reconciliation pass probes every ``running`` operation of a connection
and moves the ones whose PID is gone to ``stopped``. Evidence that is not
conclusive (probe errors, missing PIDs) never downgrades a status.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..models.connection import DGXConnection
from ..models.database import SessionLocal, get_session
from ..models.operation import (
    Liveness,
    Operation,
    OperationListing,
    OperationStatus,
    SyncSummary,
)
from .connection_manager import ConnectionManager, connection_manager
from .errors import (
    ConnectionNotFoundError,
    ConnectionUnavailableError,
    OperationNotFoundError,
)
from .event_manager import EventManager, event_manager

logger = logging.getLogger(__name__)

# Per-operation outcomes of one pass
OUTCOME_ALIVE = "alive"
OUTCOME_STOPPED = "stopped"
OUTCOME_ERROR = "error"
OUTCOME_ALREADY_STOPPED = "already_stopped"

DEFAULT_MAX_CONCURRENCY = 4


class OperationReconciler:
    """Keeps stored operation status consistent with remote process liveness."""

    def __init__(
        self,
        connections: ConnectionManager = connection_manager,
        session_factory=SessionLocal,
        events: EventManager = event_manager,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.connections = connections
        self.session_factory = session_factory
        self.events = events
        self.max_concurrency = max(1, max_concurrency)

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _require_connection(self, connection_id: str):
        with get_session(self.session_factory) as db:
            if db.get(DGXConnection, connection_id) is None:
                raise ConnectionNotFoundError(connection_id)

    def _running_operations(
        self, connection_id: str
    ) -> List[Tuple[str, Optional[int], str, Optional[str]]]:
        with get_session(self.session_factory) as db:
            rows = (
                db.query(Operation.id, Operation.pid, Operation.name, Operation.type)
                .filter(
                    Operation.connection_id == connection_id,
                    Operation.status == OperationStatus.RUNNING.value,
                )
                .all()
            )
        return [(row.id, row.pid, row.name, row.type) for row in rows]

    def query_operations(
        self,
        connection_id: Optional[str] = None,
        op_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Read operations as persisted, newest launch first."""
        with get_session(self.session_factory) as db:
            query = db.query(Operation)
            if connection_id:
                query = query.filter(Operation.connection_id == connection_id)
            if op_type:
                query = query.filter(Operation.type == op_type)
            if status:
                query = query.filter(Operation.status == status)

            operations = (
                query.order_by(
                    Operation.started_at.is_(None),
                    Operation.started_at.desc(),
                    Operation.created_at.desc(),
                    Operation.id,
                )
                .limit(limit)
                .all()
            )
            return [operation.to_dict() for operation in operations]

    def _mark_stopped(self, operation_id: str) -> bool:
        """Conditionally move one record from running to stopped.

        Returns True only if this call performed the transition.
        """
        now = datetime.utcnow()
        with get_session(self.session_factory) as db:
            updated = (
                db.query(Operation)
                .filter(
                    Operation.id == operation_id,
                    Operation.status == OperationStatus.RUNNING.value,
                )
                .update(
                    {
                        Operation.status: OperationStatus.STOPPED.value,
                        Operation.completed_at: now,
                        Operation.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
        return updated == 1

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def _reconcile_one(
        self,
        connection_id: str,
        operation_id: str,
        pid: Optional[int],
        name: str,
        op_type: Optional[str],
        semaphore: asyncio.Semaphore,
    ) -> str:
        if pid is None:
            logger.debug(f"Operation {name} ({operation_id}) has no PID to check")
            return OUTCOME_ERROR

        async with semaphore:
            liveness = await self.connections.check_process(connection_id, pid)

        if liveness is Liveness.ALIVE:
            return OUTCOME_ALIVE
        if liveness is not Liveness.DEAD:
            return OUTCOME_ERROR

        try:
            transitioned = self._mark_stopped(operation_id)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to persist stopped status for operation {operation_id}: {e}"
            )
            return OUTCOME_ERROR

        if not transitioned:
            return OUTCOME_ALREADY_STOPPED

        logger.info(f"Process {pid} for operation {name} has stopped")
        await self.events.send_operation_update(
            {
                "operationId": operation_id,
                "connectionId": connection_id,
                "name": name,
                "type": op_type,
                "status": OperationStatus.STOPPED.value,
                "statusChanged": True,
            }
        )
        return OUTCOME_STOPPED

    async def _reconcile(
        self,
        connection_id: str,
        operations: List[Tuple[str, Optional[int], str, Optional[str]]],
    ) -> SyncSummary:
        if not operations:
            return SyncSummary()

        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *[
                self._reconcile_one(
                    connection_id, op_id, pid, name, op_type, semaphore
                )
                for op_id, pid, name, op_type in operations
            ],
            return_exceptions=True,
        )

        synced = 0
        errors = 0
        for (op_id, _, _, _), outcome in zip(operations, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Reconciliation of operation {op_id} failed: {outcome!r}")
                errors += 1
            elif outcome == OUTCOME_STOPPED:
                synced += 1
            elif outcome == OUTCOME_ERROR:
                errors += 1

        return SyncSummary(checked=len(operations), synced=synced, errors=errors)

    async def sync_operations(self, connection_id: str) -> SyncSummary:
        """Check every running operation of a connection and stop dead ones.

        Raises:
            ConnectionNotFoundError: Unknown connection
            ConnectionUnavailableError: No live session to check with
        """
        self._require_connection(connection_id)
        if not self.connections.is_connected(connection_id):
            raise ConnectionUnavailableError(connection_id)

        summary = await self._reconcile(
            connection_id, self._running_operations(connection_id)
        )
        logger.info(f"Status sync for {connection_id} complete: {summary.model_dump()}")
        return summary

    async def list_operations(
        self,
        connection_id: str,
        sync_status: bool = True,
        op_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> OperationListing:
        """List a connection's operations, re-checking running ones first.

        With ``sync_status`` false no remote call is made. When the
        connection has no live session the persisted records are returned
        and the listing says why no sync happened.
        """
        self._require_connection(connection_id)

        listing = OperationListing()
        if not sync_status:
            listing.sync_skipped_reason = "disabled"
        elif not self.connections.is_connected(connection_id):
            listing.sync_skipped_reason = "not_connected"
        else:
            listing.summary = await self._reconcile(
                connection_id, self._running_operations(connection_id)
            )
            listing.sync_performed = True
            if listing.summary.synced:
                logger.info(
                    f"Listing sync for {connection_id}: {listing.summary.model_dump()}"
                )

        listing.operations = self.query_operations(
            connection_id, op_type=op_type, status=status, limit=limit
        )
        return listing

    async def check_operation(self, operation_id: str) -> Dict[str, Any]:
        """Reconcile a single operation now and return its fresh record.

        Raises:
            OperationNotFoundError: Unknown operation
            ConnectionUnavailableError: Its connection has no live session
        """
        with get_session(self.session_factory) as db:
            operation = db.get(Operation, operation_id)
            if operation is None:
                raise OperationNotFoundError(operation_id)
            connection_id = operation.connection_id
            target = (operation.id, operation.pid, operation.name, operation.type)
            is_running = operation.status == OperationStatus.RUNNING.value

        if is_running:
            if not connection_id or not self.connections.is_connected(connection_id):
                raise ConnectionUnavailableError(connection_id or "")
            await self._reconcile(connection_id, [target])

        with get_session(self.session_factory) as db:
            return db.get(Operation, operation_id).to_dict()


# Global reconciler instance
reconciler = OperationReconciler()


def get_reconciler() -> OperationReconciler:
    """Dependency for FastAPI endpoints."""
    return reconciler
