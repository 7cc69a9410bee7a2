"""
Metrics API
Ingestion and inspection of metric samples.

Endpoints:
    POST /api/metrics/samples           → Record one sample
    POST /api/metrics/samples/batch     → Record many samples
    GET  /api/metrics                   → List metrics + store stats
    GET  /api/metrics/{name}/recent     → Last N samples
    GET  /api/metrics/{name}/window     → Samples in [start, end]
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from ..core import to_utc
from ..services import AlertDispatcher, get_dispatcher

router = APIRouter(prefix="/metrics", tags=["Metrics"])


# =============================================================================
# Request Models
# =============================================================================

class SampleRequest(BaseModel):
    """Request body for one sample"""
    metric_name: str
    value: float
    timestamp: Optional[datetime] = None
    deployment_id: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "metric_name": "error_rate",
            "value": 0.012,
            "timestamp": "2024-05-01T12:00:00Z"
        }
    })


class BatchRequest(BaseModel):
    samples: List[SampleRequest]


# =============================================================================
# Ingestion
# =============================================================================

@router.post("/samples")
async def record_sample(request: SampleRequest, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """Record a single metric sample"""
    accepted = dispatcher.record_sample(
        request.metric_name,
        request.value,
        to_utc(request.timestamp) if request.timestamp else None,
        request.deployment_id,
    )
    if not accepted:
        raise HTTPException(400, f"Sample rejected for {request.metric_name}")

    return {"message": "Sample recorded", "metric_name": request.metric_name}


@router.post("/samples/batch")
async def record_batch(request: BatchRequest, dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """Record many samples; rejected ones are counted, not fatal"""
    accepted = 0
    for s in request.samples:
        if dispatcher.record_sample(
            s.metric_name, s.value, to_utc(s.timestamp) if s.timestamp else None, s.deployment_id
        ):
            accepted += 1

    return {
        "success": accepted == len(request.samples),
        "count": accepted,
        "errors": len(request.samples) - accepted,
        "metrics": sorted(set(s.metric_name for s in request.samples)),
    }


# =============================================================================
# Inspection
# =============================================================================

@router.get("")
async def list_metrics(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    ingestion = dispatcher.ingestion
    return {
        "metrics": ingestion.get_metrics(),
        "stats": ingestion.store.stats()
    }


@router.get("/{metric_name}/recent")
async def recent_samples(
    metric_name: str,
    limit: int = Query(default=100, ge=1, le=10000),
    dispatcher: AlertDispatcher = Depends(get_dispatcher)
):
    samples = dispatcher.ingestion.store.recent(metric_name, limit)
    if not samples:
        raise HTTPException(404, f"No samples for {metric_name}")

    return {
        "metric_name": metric_name,
        "count": len(samples),
        "data": [s.to_dict() for s in samples]
    }


@router.get("/{metric_name}/window")
async def window_samples(
    metric_name: str,
    start: datetime,
    end: datetime,
    dispatcher: AlertDispatcher = Depends(get_dispatcher)
):
    samples = dispatcher.ingestion.store.window(metric_name, to_utc(start), to_utc(end))

    return {
        "metric_name": metric_name,
        "start": to_utc(start).isoformat(),
        "end": to_utc(end).isoformat(),
        "count": len(samples),
        "data": [s.to_dict() for s in samples]
    }
