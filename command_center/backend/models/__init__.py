"""Database models for the Command Center operations service."""

from .connection import ConnectionCreate, ConnectionUpdate, DGXConnection, ExecRequest
from .database import Base, SessionLocal, engine, get_db, get_session, init_database
from .metric import MetricSample
from .operation import (
    KillRequest,
    Liveness,
    Operation,
    OperationCreate,
    OperationListing,
    OperationStatus,
    OperationUpdate,
    ProgressUpdate,
    SyncRequest,
    SyncSummary,
)
from .project import (
    DGXProject,
    JobCreate,
    JobStatus,
    JobUpdate,
    ProjectCreate,
    ProjectUpdate,
    TrainingJob,
)

__all__ = [
    "Base",
    "engine",
    "get_db",
    "get_session",
    "SessionLocal",
    "init_database",
    # Connections
    "DGXConnection",
    "ConnectionCreate",
    "ConnectionUpdate",
    "ExecRequest",
    # Operations
    "Operation",
    "OperationStatus",
    "Liveness",
    "OperationCreate",
    "OperationUpdate",
    "ProgressUpdate",
    "KillRequest",
    "SyncRequest",
    "SyncSummary",
    "OperationListing",
    # Metrics
    "MetricSample",
    # Projects
    "DGXProject",
    "ProjectCreate",
    "ProjectUpdate",
    "TrainingJob",
    "JobStatus",
    "JobCreate",
    "JobUpdate",
]
