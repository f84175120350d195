"""Business logic services."""

from .connection_manager import ConnectionManager, connection_manager
from .event_manager import EventManager, event_manager
from .metrics import MetricsCollector, metrics_collector
from .operation_monitor import OperationMonitor, operation_monitor
from .reconciler import OperationReconciler, reconciler

__all__ = [
    "ConnectionManager",
    "connection_manager",
    "EventManager",
    "event_manager",
    "MetricsCollector",
    "metrics_collector",
    "OperationMonitor",
    "operation_monitor",
    "OperationReconciler",
    "reconciler",
]
