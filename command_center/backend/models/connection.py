"""Remote host connection model."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from .database import Base

LOCAL_HOSTNAMES = {"localhost", "127.0.0.1", "::1"}


class DGXConnection(Base):
    """Database model for a remote GPU host reachable over SSH."""

    __tablename__ = "dgx_connections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    hostname = Column(String, nullable=False)
    username = Column(String, nullable=False)
    ssh_key_path = Column(String, nullable=True)
    port = Column(Integer, default=22)

    # Session state (reset on startup, the live session is in memory)
    is_active = Column(Boolean, default=False)
    last_connected_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_local(self) -> bool:
        return (self.hostname or "").lower() in LOCAL_HOSTNAMES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "hostname": self.hostname,
            "username": self.username,
            "ssh_key_path": self.ssh_key_path,
            "port": self.port,
            "is_active": bool(self.is_active),
            "last_connected_at": _iso(self.last_connected_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<DGXConnection(id={self.id}, host={self.username}@{self.hostname})>"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


class ConnectionCreate(BaseModel):
    """Request model for registering a connection."""

    name: str = Field(..., min_length=1)
    hostname: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    ssh_key_path: Optional[str] = None
    port: int = Field(22, ge=1, le=65535)


class ConnectionUpdate(BaseModel):
    """Request model for editing a connection."""

    name: Optional[str] = None
    hostname: Optional[str] = None
    username: Optional[str] = None
    ssh_key_path: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)


class ExecRequest(BaseModel):
    """Request model for running a command on a host."""

    command: str = Field(..., min_length=1)
