"""GPU metrics history model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String

from .database import Base


class MetricSample(Base):
    """Averaged host metrics, one row per collection."""

    __tablename__ = "dgx_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    connection_id = Column(String, index=True)
    gpu_utilization = Column(Float)  # Average across all GPUs
    memory_used_mb = Column(Integer)  # Unified system memory
    memory_total_mb = Column(Integer)
    temperature_c = Column(Float)  # Celsius
    power_watts = Column(Float)
    recorded_at = Column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "connection_id": self.connection_id,
            "gpu_utilization": self.gpu_utilization,
            "memory_used_mb": self.memory_used_mb,
            "memory_total_mb": self.memory_total_mb,
            "temperature_c": self.temperature_c,
            "power_watts": self.power_watts,
            "recorded_at": (
                self.recorded_at.isoformat() + "Z" if self.recorded_at else None
            ),
        }
