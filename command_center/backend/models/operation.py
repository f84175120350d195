"""Remote operation models (ComfyUI, training runs, services)."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from .database import Base


class OperationStatus(str, Enum):
    """Operation status enumeration"""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"  # Process found dead by reconciliation
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # Killed on request
    UNKNOWN = "unknown"


class Liveness(str, Enum):
    """Outcome of a remote process-existence probe."""

    ALIVE = "alive"
    DEAD = "dead"
    ERROR = "error"  # Probe itself failed, state is indeterminate


class Operation(Base):
    """Database model for a process launched on a remote host."""

    __tablename__ = "dgx_operations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    connection_id = Column(String, index=True)
    project_id = Column(String, ForeignKey("dgx_projects.id"), nullable=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True)
    status = Column(String, default=OperationStatus.PENDING.value, index=True)
    pid = Column(Integer, nullable=True)
    command = Column(String, nullable=True)

    # Progress (-1 means indeterminate)
    progress = Column(Integer, default=-1)
    progress_current = Column(Integer, nullable=True)
    progress_total = Column(Integer, nullable=True)
    progress_message = Column(String, nullable=True)

    # Service endpoints
    port = Column(Integer, nullable=True)
    url = Column(String, nullable=True)
    websocket_url = Column(String, nullable=True)

    metrics = Column(JSON, nullable=True)  # Parsed from log: loss, accuracy, lr
    log_file = Column(String, nullable=True)  # Remote path

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "project_id": self.project_id,
            "name": self.name,
            "type": self.type,
            "category": self.category,
            "status": self.status,
            "pid": self.pid,
            "command": self.command,
            "progress": self.progress,
            "progress_current": self.progress_current,
            "progress_total": self.progress_total,
            "progress_message": self.progress_message,
            "port": self.port,
            "url": self.url,
            "websocket_url": self.websocket_url,
            "metrics": self.metrics,
            "log_file": self.log_file,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Operation(id={self.id}, pid={self.pid}, status={self.status})>"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class OperationCreate(BaseModel):
    """Operation creation request"""

    connection_id: Optional[str] = None
    project_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    category: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING
    pid: Optional[int] = None
    command: Optional[str] = None
    progress: int = -1
    progress_current: Optional[int] = None
    progress_total: Optional[int] = None
    progress_message: Optional[str] = None
    port: Optional[int] = None
    url: Optional[str] = None
    websocket_url: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    log_file: Optional[str] = None


class OperationUpdate(BaseModel):
    """Partial operation update; only fields that were sent are applied."""

    name: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    status: Optional[OperationStatus] = None
    pid: Optional[int] = None
    command: Optional[str] = None
    progress: Optional[int] = None
    progress_current: Optional[int] = None
    progress_total: Optional[int] = None
    progress_message: Optional[str] = None
    port: Optional[int] = None
    url: Optional[str] = None
    websocket_url: Optional[str] = None
    metrics: Optional[Dict[str, Any]] = None
    log_file: Optional[str] = None


class ProgressUpdate(BaseModel):
    """Quick progress update request"""

    progress: Optional[int] = None
    progress_current: Optional[int] = None
    progress_total: Optional[int] = None
    progress_message: Optional[str] = None


class KillRequest(BaseModel):
    """Signal to send when terminating an operation."""

    signal: str = Field("SIGTERM", pattern="^(SIGTERM|SIGKILL)$")


class SyncRequest(BaseModel):
    """Bulk status sync request"""

    connection_id: str = Field(..., min_length=1)


class SyncSummary(BaseModel):
    """Aggregate counts from one reconciliation pass."""

    checked: int = 0
    synced: int = 0
    errors: int = 0


class OperationListing(BaseModel):
    """Operations of a connection plus whether they were re-checked."""

    operations: List[Dict[str, Any]] = Field(default_factory=list)
    sync_performed: bool = False
    sync_skipped_reason: Optional[str] = None
    summary: Optional[SyncSummary] = None
