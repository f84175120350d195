"""Host metrics API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..services.errors import CommandTimeoutError, NotConnectedError
from ..services.metrics import MetricsCollector, get_metrics_collector
from ..utils import error_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dgx/metrics")


@router.get("/{connection_id}")
async def get_metrics(
    connection_id: str,
    collector: MetricsCollector = Depends(get_metrics_collector),
):
    """Collect GPU, memory, network and storage metrics now."""
    try:
        return success_response(await collector.collect_metrics(connection_id))
    except NotConnectedError:
        raise HTTPException(
            status_code=409,
            detail=error_response(title="Conflict", status=409, detail="Not connected"),
        )
    except CommandTimeoutError as e:
        raise HTTPException(
            status_code=504,
            detail=error_response(title="Gateway Timeout", status=504, detail=str(e)),
        )
    except Exception as e:
        logger.error(f"Failed to collect metrics for {connection_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=error_response(
                title="Internal Server Error",
                status=500,
                detail=f"Failed to collect metrics: {str(e)}",
            ),
        )


@router.get("/{connection_id}/history")
async def get_metrics_history(
    connection_id: str,
    hours: int = Query(24, ge=1, le=24 * 30),
    collector: MetricsCollector = Depends(get_metrics_collector),
):
    try:
        samples = collector.metrics_history(connection_id, hours=hours)
        return success_response(samples, {"hours": hours, "count": len(samples)})
    except Exception as e:
        logger.error(f"Failed to read metrics history: {e}")
        raise HTTPException(
            status_code=500,
            detail=error_response(
                title="Internal Server Error",
                status=500,
                detail=f"Failed to read metrics history: {str(e)}",
            ),
        )
