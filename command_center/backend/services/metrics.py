"""Host metrics collection (GPU, memory, network, storage)."""

import asyncio
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List

from ..models.database import SessionLocal, get_session
from ..models.metric import MetricSample
from .connection_manager import ConnectionManager, connection_manager

logger = logging.getLogger(__name__)

GPU_QUERY = (
    "nvidia-smi --query-gpu=index,name,utilization.gpu,temperature.gpu,power.draw "
    "--format=csv,noheader,nounits"
)
MEMORY_QUERY = "free -m | grep Mem"
NETWORK_QUERY = 'cat /proc/net/dev | grep -E "enP7s7|eth0" | head -1'
STORAGE_QUERY = "df -BG /home 2>/dev/null | tail -1"

NET_DEV_LINE = re.compile(
    r"(\w+):\s*(\d+)\s+(\d+)\s+\d+\s+\d+\s+\d+\s+\d+\s+\d+\s+\d+\s+(\d+)\s+(\d+)"
)


def _to_int(value: str, default: int = 0) -> int:
    try:
        return int(float(value.rstrip("G%")))
    except (ValueError, AttributeError):
        return default


def _to_float(value: str, default: float = 0.0) -> float:
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def parse_gpus(output: str) -> List[Dict[str, Any]]:
    """Parse nvidia-smi CSV rows. Some GPUs (GB10) report no memory columns."""
    gpus = []
    for line in output.strip().splitlines():
        parts = [v.strip() for v in line.split(",")]
        if not parts or not parts[0]:
            continue
        parts += [""] * (5 - len(parts))
        gpus.append(
            {
                "index": _to_int(parts[0]),
                "name": parts[1] or "Unknown GPU",
                "gpuUtilization": _to_float(parts[2]),
                "temperature": _to_int(parts[3]),
                "powerDraw": _to_float(parts[4]),
            }
        )
    return gpus


def parse_memory(output: str) -> Dict[str, int]:
    """Parse the ``Mem:`` row of ``free -m``."""
    memory = {"total": 0, "used": 0, "free": 0, "available": 0}
    parts = output.strip().split()
    if len(parts) >= 4:
        memory["total"] = _to_int(parts[1])
        memory["used"] = _to_int(parts[2])
        memory["free"] = _to_int(parts[3])
    if len(parts) >= 7:
        memory["available"] = _to_int(parts[6])
    return memory


def parse_network(output: str) -> Dict[str, Any]:
    """Parse one interface line of ``/proc/net/dev``."""
    network = {
        "interface": "unknown",
        "rxBytes": 0,
        "rxPackets": 0,
        "txBytes": 0,
        "txPackets": 0,
    }
    match = NET_DEV_LINE.search(output.strip())
    if match:
        network.update(
            {
                "interface": match.group(1),
                "rxBytes": int(match.group(2)),
                "rxPackets": int(match.group(3)),
                "txBytes": int(match.group(4)),
                "txPackets": int(match.group(5)),
            }
        )
    return network


def parse_storage(output: str) -> Dict[str, Any]:
    """Parse a ``df -BG`` row (sizes in GB)."""
    storage = {
        "total": 0,
        "used": 0,
        "available": 0,
        "usedPercent": 0,
        "mountPoint": "/home",
    }
    parts = output.strip().split()
    if len(parts) >= 5:
        storage.update(
            {
                "total": _to_int(parts[1]),
                "used": _to_int(parts[2]),
                "available": _to_int(parts[3]),
                "usedPercent": _to_int(parts[4]),
                "mountPoint": parts[5] if len(parts) > 5 else "/home",
            }
        )
    return storage


class MetricsCollector:
    """Collects host metrics over a connection and keeps a history."""

    def __init__(
        self,
        connections: ConnectionManager = connection_manager,
        session_factory=SessionLocal,
    ):
        self.connections = connections
        self.session_factory = session_factory

    async def _query(self, connection_id: str, command: str) -> str:
        result = await self.connections.execute_command(
            connection_id, command, record=False
        )
        return result.stdout if result.success else ""

    async def collect_metrics(self, connection_id: str) -> Dict[str, Any]:
        """Run all metric queries in parallel, store an averaged sample.

        Raises:
            NotConnectedError: No live session
        """
        gpu_out, mem_out, net_out, disk_out = await asyncio.gather(
            self._query(connection_id, GPU_QUERY),
            self._query(connection_id, MEMORY_QUERY),
            self._query(connection_id, NETWORK_QUERY),
            self._query(connection_id, STORAGE_QUERY),
        )

        gpus = parse_gpus(gpu_out)
        memory = parse_memory(mem_out)
        network = parse_network(net_out)
        storage = parse_storage(disk_out)

        # Unified memory is reported per GPU for display
        enriched = [
            {
                **gpu,
                "memoryUsed": memory["used"],
                "memoryTotal": memory["total"],
                "memoryAvailable": memory["available"],
                "network": network,
            }
            for gpu in gpus
        ]

        now = datetime.utcnow()
        count = len(gpus)
        with get_session(self.session_factory) as db:
            db.add(
                MetricSample(
                    connection_id=connection_id,
                    gpu_utilization=(
                        sum(g["gpuUtilization"] for g in gpus) / count if count else 0
                    ),
                    memory_used_mb=memory["used"],
                    memory_total_mb=memory["total"],
                    temperature_c=(
                        sum(g["temperature"] for g in gpus) / count if count else 0
                    ),
                    power_watts=(
                        sum(g["powerDraw"] for g in gpus) / count if count else 0
                    ),
                    recorded_at=now,
                )
            )

        return {
            "gpus": enriched,
            "memory": memory,
            "network": network,
            "storage": storage,
            "timestamp": now.isoformat() + "Z",
        }

    def metrics_history(self, connection_id: str, hours: int = 24) -> List[Dict[str, Any]]:
        since = datetime.utcnow() - timedelta(hours=hours)
        with get_session(self.session_factory) as db:
            samples = (
                db.query(MetricSample)
                .filter(
                    MetricSample.connection_id == connection_id,
                    MetricSample.recorded_at >= since,
                )
                .order_by(MetricSample.recorded_at.asc())
                .all()
            )
            return [sample.to_dict() for sample in samples]


# Global metrics collector instance
metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Dependency for FastAPI endpoints."""
    return metrics_collector
