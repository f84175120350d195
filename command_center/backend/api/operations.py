"""Operation API endpoints (ComfyUI, services, training runs).

Listing re-checks running operations by default; pass
``sync_status=false`` for a fast listing without remote calls.
"""

import logging
import shlex
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..models import (
    KillRequest,
    Operation,
    OperationCreate,
    OperationStatus,
    OperationUpdate,
    ProgressUpdate,
    SyncRequest,
    get_db,
)
from ..services.connection_manager import ConnectionManager, get_connection_manager
from ..services.errors import (
    CommandTimeoutError,
    ConnectionNotFoundError,
    ConnectionUnavailableError,
    OperationNotFoundError,
)
from ..services.event_manager import event_manager
from ..services.operation_monitor import OperationMonitor, get_operation_monitor
from ..services.reconciler import OperationReconciler, get_reconciler
from ..utils import error_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dgx")

TERMINAL_STATUSES = {
    OperationStatus.STOPPED.value,
    OperationStatus.COMPLETED.value,
    OperationStatus.FAILED.value,
    OperationStatus.CANCELLED.value,
}


def _http_error(status: int, title: str, detail: str) -> HTTPException:
    return HTTPException(
        status_code=status,
        detail=error_response(title=title, status=status, detail=detail),
    )


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return _http_error(500, "Internal Server Error", f"Failed to {action}: {str(e)}")


def _get_operation_or_404(db: Session, operation_id: str) -> Operation:
    operation = db.get(Operation, operation_id)
    if operation is None:
        raise _http_error(404, "Not Found", "Operation not found")
    return operation


def _require_session(manager: ConnectionManager, operation: Operation):
    if not operation.connection_id or not manager.is_connected(operation.connection_id):
        raise _http_error(409, "Conflict", "No active connection for this operation")


@router.get("/operations")
async def list_operations(
    connection_id: Optional[str] = Query(None, description="Filter by connection"),
    sync_status: bool = Query(
        True, description="Re-check running operations on the host before listing"
    ),
    type: Optional[str] = Query(None, description="Filter by operation type"),
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    status_reconciler: OperationReconciler = Depends(get_reconciler),
):
    """List operations.

    With a connection id and ``sync_status`` (default), running operations
    are checked on the host first and dead ones are stored as stopped.
    Without a connection id, all operations are listed as stored.
    """
    try:
        if not connection_id:
            operations = status_reconciler.query_operations(
                op_type=type, status=status, limit=limit
            )
            return success_response(
                operations,
                {"sync_performed": False, "sync_skipped_reason": "no_connection"},
            )

        listing = await status_reconciler.list_operations(
            connection_id,
            sync_status=sync_status,
            op_type=type,
            status=status,
            limit=limit,
        )
        return success_response(
            listing.operations,
            {
                "sync_performed": listing.sync_performed,
                "sync_skipped_reason": listing.sync_skipped_reason,
                "summary": listing.summary.model_dump() if listing.summary else None,
            },
        )
    except ConnectionNotFoundError as e:
        raise _http_error(404, "Not Found", str(e))
    except Exception as e:
        raise _internal_error("list operations", e)


@router.post("/operations/sync")
async def sync_operations(
    payload: SyncRequest,
    status_reconciler: OperationReconciler = Depends(get_reconciler),
):
    """Check all running operations of a connection and fix stale status."""
    try:
        summary = await status_reconciler.sync_operations(payload.connection_id)
        return success_response(summary.model_dump())
    except ConnectionNotFoundError as e:
        raise _http_error(404, "Not Found", str(e))
    except ConnectionUnavailableError as e:
        raise _http_error(409, "Conflict", str(e))
    except Exception as e:
        raise _internal_error("sync operations", e)


@router.get("/operations/{operation_id}")
async def get_operation(operation_id: str, db: Session = Depends(get_db)):
    try:
        return success_response(_get_operation_or_404(db, operation_id).to_dict())
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get operation", e)


@router.post("/operations")
async def create_operation(payload: OperationCreate, db: Session = Depends(get_db)):
    """Record a launched operation."""
    try:
        values = payload.model_dump()
        values["status"] = payload.status.value
        operation = Operation(**values)
        if payload.status == OperationStatus.RUNNING:
            operation.started_at = datetime.utcnow()

        db.add(operation)
        db.commit()
        db.refresh(operation)
        logger.info(f"Operation created: {operation.name} ({operation.id})")
        return success_response(operation.to_dict())
    except Exception as e:
        db.rollback()
        raise _internal_error("create operation", e)


@router.put("/operations/{operation_id}")
async def update_operation(
    operation_id: str, payload: OperationUpdate, db: Session = Depends(get_db)
):
    """Update fields; started_at/completed_at follow status changes."""
    try:
        operation = _get_operation_or_404(db, operation_id)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            raise _http_error(400, "Bad Request", "No valid fields to update")

        previous_status = operation.status
        if isinstance(updates.get("status"), OperationStatus):
            updates["status"] = updates["status"].value

        for field, value in updates.items():
            setattr(operation, field, value)

        new_status = updates.get("status")
        now = datetime.utcnow()
        if (
            new_status == OperationStatus.RUNNING.value
            and previous_status != OperationStatus.RUNNING.value
            and not operation.started_at
        ):
            operation.started_at = now
        elif (
            new_status in TERMINAL_STATUSES
            and previous_status not in TERMINAL_STATUSES
            and not operation.completed_at
        ):
            operation.completed_at = now
        operation.updated_at = now

        db.commit()
        db.refresh(operation)
        return success_response(operation.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("update operation", e)


@router.post("/operations/{operation_id}/progress")
async def update_progress(
    operation_id: str, payload: ProgressUpdate, db: Session = Depends(get_db)
):
    try:
        operation = _get_operation_or_404(db, operation_id)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            raise _http_error(400, "Bad Request", "No progress fields provided")

        for field, value in updates.items():
            setattr(operation, field, value)
        operation.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(operation)

        await event_manager.send_operation_update(
            {"operationId": operation.id, **updates, "statusChanged": False}
        )
        return success_response(operation.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("update progress", e)


@router.post("/operations/{operation_id}/check")
async def check_operation(
    operation_id: str,
    status_reconciler: OperationReconciler = Depends(get_reconciler),
):
    """Reconcile one operation now."""
    try:
        return success_response(await status_reconciler.check_operation(operation_id))
    except OperationNotFoundError:
        raise _http_error(404, "Not Found", "Operation not found")
    except ConnectionUnavailableError:
        raise _http_error(409, "Conflict", "No active connection for this operation")
    except Exception as e:
        raise _internal_error("check operation", e)


@router.post("/operations/{operation_id}/kill")
async def kill_operation(
    operation_id: str,
    payload: Optional[KillRequest] = None,
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Send SIGTERM (default) or SIGKILL to a running operation."""
    signal_name = payload.signal if payload else "SIGTERM"
    try:
        operation = _get_operation_or_404(db, operation_id)
        if not operation.pid:
            raise _http_error(400, "Bad Request", "Operation has no PID")
        if operation.status != OperationStatus.RUNNING.value:
            raise _http_error(400, "Bad Request", "Operation is not running")
        _require_session(manager, operation)

        kill_cmd = (
            f"kill -9 {int(operation.pid)}"
            if signal_name == "SIGKILL"
            else f"kill {int(operation.pid)}"
        )
        result = await manager.execute_command(operation.connection_id, kill_cmd)
        if not result.success:
            raise _http_error(
                502, "Bad Gateway", result.stderr.strip() or "Failed to kill process"
            )

        now = datetime.utcnow()
        operation.status = OperationStatus.CANCELLED.value
        operation.completed_at = now
        operation.updated_at = now
        db.commit()

        await event_manager.send_operation_update(
            {
                "operationId": operation.id,
                "connectionId": operation.connection_id,
                "name": operation.name,
                "status": operation.status,
                "statusChanged": True,
            }
        )
        return success_response(
            {"killed": True, "pid": operation.pid, "signal": signal_name}
        )
    except HTTPException:
        raise
    except CommandTimeoutError as e:
        raise _http_error(504, "Gateway Timeout", str(e))
    except Exception as e:
        db.rollback()
        raise _internal_error("kill operation", e)


@router.get("/operations/{operation_id}/logs")
async def get_operation_logs(
    operation_id: str,
    tail: int = Query(100, ge=1, le=10000),
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    try:
        operation = _get_operation_or_404(db, operation_id)
        if not operation.log_file:
            raise _http_error(400, "Bad Request", "Operation has no log file")
        _require_session(manager, operation)

        result = await manager.execute_command(
            operation.connection_id,
            f"tail -n {tail} {shlex.quote(operation.log_file)}",
            record=False,
        )
        if not result.success:
            raise _http_error(
                502, "Bad Gateway", result.stderr.strip() or "Failed to read logs"
            )
        return success_response({"logs": result.stdout, "file": operation.log_file})
    except HTTPException:
        raise
    except CommandTimeoutError as e:
        raise _http_error(504, "Gateway Timeout", str(e))
    except Exception as e:
        raise _internal_error("read operation logs", e)


@router.post("/operations/{operation_id}/restart")
async def restart_operation(
    operation_id: str,
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Relaunch an operation's command as a new operation record.

    A still-running original is terminated and marked cancelled first.
    """
    try:
        operation = _get_operation_or_404(db, operation_id)
        if not operation.command:
            raise _http_error(400, "Bad Request", "Operation has no command to restart")
        _require_session(manager, operation)

        now = datetime.utcnow()
        if operation.status == OperationStatus.RUNNING.value and operation.pid:
            await manager.execute_command(
                operation.connection_id, f"kill {int(operation.pid)}"
            )
            operation.status = OperationStatus.CANCELLED.value
            operation.completed_at = now
            operation.updated_at = now

        log_file = operation.log_file or f"/tmp/{operation.id}.log"
        launch = f"nohup {operation.command} > {shlex.quote(log_file)} 2>&1 & echo $!"
        result = await manager.execute_command(operation.connection_id, launch)
        if not result.success:
            db.commit()
            raise _http_error(
                502, "Bad Gateway", result.stderr.strip() or "Failed to restart"
            )

        try:
            new_pid = int(result.stdout.strip().splitlines()[-1])
        except (ValueError, IndexError):
            db.commit()
            raise _http_error(
                502, "Bad Gateway", f"Could not read PID from: {result.stdout!r}"
            )

        relaunched = Operation(
            connection_id=operation.connection_id,
            project_id=operation.project_id,
            name=operation.name,
            type=operation.type,
            category=operation.category,
            status=OperationStatus.RUNNING.value,
            pid=new_pid,
            command=operation.command,
            port=operation.port,
            url=operation.url,
            websocket_url=operation.websocket_url,
            log_file=log_file,
            started_at=now,
        )
        db.add(relaunched)
        db.commit()
        db.refresh(relaunched)

        logger.info(
            f"Operation {operation.name} restarted as {relaunched.id} (PID {new_pid})"
        )
        return success_response(
            {
                "restarted": True,
                "pid": new_pid,
                "previous_id": operation_id,
                "operation": relaunched.to_dict(),
            }
        )
    except HTTPException:
        raise
    except CommandTimeoutError as e:
        raise _http_error(504, "Gateway Timeout", str(e))
    except Exception as e:
        db.rollback()
        raise _internal_error("restart operation", e)


@router.delete("/operations/{operation_id}")
async def delete_operation(operation_id: str, db: Session = Depends(get_db)):
    try:
        operation = _get_operation_or_404(db, operation_id)
        db.delete(operation)
        db.commit()
        return success_response({"deleted": operation_id})
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("delete operation", e)


@router.post("/monitoring/{connection_id}/start")
async def start_monitoring(
    connection_id: str,
    manager: ConnectionManager = Depends(get_connection_manager),
    monitor: OperationMonitor = Depends(get_operation_monitor),
):
    """Poll this connection's running operations in the background."""
    if not manager.is_connected(connection_id):
        raise _http_error(409, "Conflict", "Not connected")
    started = monitor.start_monitoring(connection_id)
    return success_response({"monitoring": True, "started": started})


@router.post("/monitoring/{connection_id}/stop")
async def stop_monitoring(
    connection_id: str,
    monitor: OperationMonitor = Depends(get_operation_monitor),
):
    stopped = await monitor.stop_monitoring(connection_id)
    return success_response({"monitoring": False, "stopped": stopped})
