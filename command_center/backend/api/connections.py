"""Connection management API endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..models import ConnectionCreate, ConnectionUpdate, DGXConnection, ExecRequest, get_db
from ..services.connection_manager import ConnectionManager, get_connection_manager
from ..services.errors import (
    CommandTimeoutError,
    ConnectionConfigError,
    ConnectionExistsError,
    NotConnectedError,
)
from ..services.operation_monitor import OperationMonitor, get_operation_monitor
from ..utils import error_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dgx")


def _http_error(status: int, title: str, detail: str) -> HTTPException:
    return HTTPException(
        status_code=status,
        detail=error_response(title=title, status=status, detail=detail),
    )


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return _http_error(500, "Internal Server Error", f"Failed to {action}: {str(e)}")


def _get_connection_or_404(db: Session, connection_id: str) -> DGXConnection:
    connection = db.get(DGXConnection, connection_id)
    if connection is None:
        raise _http_error(404, "Not Found", f"Connection '{connection_id}' not found")
    return connection


@router.get("/connections")
async def list_connections(
    limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)
):
    """List stored connections, most recently created first."""
    try:
        connections = (
            db.query(DGXConnection)
            .order_by(DGXConnection.created_at.desc())
            .limit(limit)
            .all()
        )
        return success_response([c.to_dict() for c in connections])
    except Exception as e:
        raise _internal_error("list connections", e)


@router.get("/connections/{connection_id}")
async def get_connection(connection_id: str, db: Session = Depends(get_db)):
    try:
        return success_response(_get_connection_or_404(db, connection_id).to_dict())
    except HTTPException:
        raise
    except Exception as e:
        raise _internal_error("get connection", e)


@router.post("/connections")
async def create_connection(payload: ConnectionCreate, db: Session = Depends(get_db)):
    try:
        connection = DGXConnection(**payload.model_dump())
        db.add(connection)
        db.commit()
        db.refresh(connection)
        logger.info(f"Connection created: {connection.id} ({connection.name})")
        return success_response(connection.to_dict())
    except Exception as e:
        db.rollback()
        raise _internal_error("create connection", e)


@router.put("/connections/{connection_id}")
async def update_connection(
    connection_id: str, payload: ConnectionUpdate, db: Session = Depends(get_db)
):
    try:
        connection = _get_connection_or_404(db, connection_id)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            raise _http_error(400, "Bad Request", "No valid fields to update")

        for field, value in updates.items():
            setattr(connection, field, value)
        connection.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(connection)
        return success_response(connection.to_dict())
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("update connection", e)


@router.delete("/connections/{connection_id}")
async def delete_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
    monitor: OperationMonitor = Depends(get_operation_monitor),
):
    """Delete a connection, closing its session first if one is open."""
    try:
        connection = _get_connection_or_404(db, connection_id)

        await monitor.stop_monitoring(connection_id)
        if manager.is_connected(connection_id):
            await manager.disconnect(connection_id)

        db.delete(connection)
        db.commit()
        return success_response({"deleted": connection_id})
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise _internal_error("delete connection", e)


@router.post("/connect/{connection_id}")
async def connect(
    connection_id: str,
    db: Session = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Open a session to the host."""
    try:
        connection = _get_connection_or_404(db, connection_id)
        data = await manager.connect(connection)
        return success_response(data)
    except HTTPException:
        raise
    except ConnectionConfigError as e:
        raise _http_error(400, "Bad Request", str(e))
    except ConnectionExistsError as e:
        raise _http_error(409, "Conflict", str(e))
    except (ConnectionError, OSError) as e:
        logger.error(f"Connect error for {connection_id}: {e}")
        raise _http_error(502, "Bad Gateway", f"Failed to connect: {str(e)}")
    except Exception as e:
        raise _internal_error("connect", e)


@router.post("/disconnect/{connection_id}")
async def disconnect(
    connection_id: str,
    manager: ConnectionManager = Depends(get_connection_manager),
    monitor: OperationMonitor = Depends(get_operation_monitor),
):
    try:
        await monitor.stop_monitoring(connection_id)
        await manager.disconnect(connection_id)
        return success_response({})
    except NotConnectedError:
        raise _http_error(404, "Not Found", "Connection not found")
    except Exception as e:
        raise _internal_error("disconnect", e)


@router.get("/status")
async def get_active_status(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Status of the first live connection, if any."""
    return success_response(manager.get_status())


@router.get("/status/{connection_id}")
async def get_status(
    connection_id: str,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    return success_response(manager.get_status(connection_id))


@router.get("/exec/history")
async def get_command_history(
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Last 50 user-issued commands across all connections."""
    return success_response(manager.command_history())


@router.post("/exec/{connection_id}")
async def execute_command(
    connection_id: str,
    payload: ExecRequest,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Run a command on the host. Emits one command_executed event."""
    try:
        result = await manager.execute_command(connection_id, payload.command)
    except NotConnectedError:
        raise _http_error(409, "Conflict", "Not connected")
    except CommandTimeoutError as e:
        raise _http_error(504, "Gateway Timeout", str(e))
    except Exception as e:
        raise _internal_error("execute command", e)

    if not result.success:
        raise HTTPException(
            status_code=502,
            detail=error_response(
                title="Command Failed",
                status=502,
                detail=result.stderr.strip() or "Command failed",
                errors=[result.to_dict()],
            ),
        )
    return success_response(result.to_dict())
