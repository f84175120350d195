"""Projects on a host and the training jobs run under them."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from .connection import _iso
from .database import Base


class JobStatus(str, Enum):
    """Training job status enumeration"""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


FINISHED_JOB_STATUSES = {
    JobStatus.COMPLETED.value,
    JobStatus.FAILED.value,
    JobStatus.CANCELLED.value,
}


class DGXProject(Base):
    """A working directory on a host that groups training jobs."""

    __tablename__ = "dgx_projects"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    connection_id = Column(String, ForeignKey("dgx_connections.id"), index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    project_type = Column(String, nullable=True)  # training, inference, comfyui
    remote_path = Column(String, nullable=True)
    status = Column(String, default="active")
    config = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "name": self.name,
            "description": self.description,
            "project_type": self.project_type,
            "remote_path": self.remote_path,
            "status": self.status,
            "config": self.config,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<DGXProject(id={self.id}, name={self.name})>"


class TrainingJob(Base):
    """A model training run that belongs to a project."""

    __tablename__ = "dgx_training_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String, ForeignKey("dgx_projects.id"), index=True)
    name = Column(String, nullable=False)
    model_name = Column(String, nullable=True)
    status = Column(String, default=JobStatus.PENDING.value)
    config = Column(JSON, nullable=True)
    metrics = Column(JSON, nullable=True)
    container_id = Column(String, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def apply_status(self, status: str, now: Optional[datetime] = None):
        """Set the status, stamping start and finish times on the way."""
        now = now or datetime.utcnow()
        if status == JobStatus.RUNNING.value and self.started_at is None:
            self.started_at = now
        elif status in FINISHED_JOB_STATUSES and self.completed_at is None:
            self.completed_at = now
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "model_name": self.model_name,
            "status": self.status,
            "config": self.config,
            "metrics": self.metrics,
            "container_id": self.container_id,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TrainingJob(id={self.id}, name={self.name}, status={self.status})>"


class ProjectCreate(BaseModel):
    """Request model for creating a project."""

    connection_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    project_type: Optional[str] = None
    remote_path: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    project_type: Optional[str] = None
    remote_path: Optional[str] = None
    status: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class JobCreate(BaseModel):
    """Request model for registering a training job."""

    project_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    model_name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class JobUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    model_name: Optional[str] = None
    status: Optional[JobStatus] = None
    config: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None
    container_id: Optional[str] = None
