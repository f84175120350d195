"""Service configuration from environment variables and YAML seed files."""

import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from command_center.backend.models import ConnectionCreate, DGXConnection, get_session

logger = logging.getLogger(__name__)

ENV_PREFIX = "COMMAND_CENTER_"


class ServiceConfiguration(BaseModel):
    """Tunables for the operations service"""

    api_key: Optional[str] = None
    sync_concurrency: int = Field(4, ge=1, le=64)
    poll_interval: float = Field(2.5, gt=0)
    command_timeout: float = Field(30.0, gt=0)
    connect_timeout: float = Field(30.0, gt=0)
    ssh_control_dir: Optional[str] = None
    connections_file: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "ServiceConfiguration":
        """Build from ``COMMAND_CENTER_*`` variables; explicit overrides win."""
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def load_connections_file(path: str) -> List[ConnectionCreate]:
    """Read connection definitions from a YAML file.

    Expected layout::

        connections:
          - name: Spark
            hostname: 10.0.0.5
            username: ubuntu
            ssh_key_path: ~/.ssh/id_ed25519
    """
    with open(path, "r") as f:
        document = yaml.safe_load(f) or {}

    entries = document.get("connections", []) if isinstance(document, dict) else document
    connections = []
    for index, entry in enumerate(entries or []):
        try:
            connections.append(ConnectionCreate(**entry))
        except (TypeError, ValidationError) as e:
            logger.warning(f"Skipping connection #{index} in {path}: {e}")
    return connections


def seed_connections(path: str, session_factory=None) -> int:
    """Insert connections from a YAML file that are not stored yet.

    Connections are matched on (hostname, username, port).

    Returns:
        Number of connections added
    """
    if not Path(path).exists():
        logger.warning(f"Connections file not found: {path}")
        return 0

    added = 0
    with get_session(session_factory) as db:
        for entry in load_connections_file(path):
            exists = (
                db.query(DGXConnection)
                .filter(
                    DGXConnection.hostname == entry.hostname,
                    DGXConnection.username == entry.username,
                    DGXConnection.port == entry.port,
                )
                .first()
            )
            if exists:
                continue
            db.add(DGXConnection(**entry.model_dump()))
            added += 1

    if added:
        logger.info(f"Seeded {added} connection(s) from {path}")
    return added
