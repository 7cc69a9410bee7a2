"""
Data Export API
Download endpoints for samples and fire history.

Formats:
    - CSV (default): Excel/pandas compatible
    - JSON: For programmatic access
"""

import io
import csv
import json
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from ..core import utcnow
from ..services import AlertDispatcher, get_dispatcher

router = APIRouter(prefix="/export", tags=["Export"])


def _download(rows, header, filename: str, format: str) -> StreamingResponse:
    if format == "json":
        content = json.dumps([dict(zip(header, r)) for r in rows], indent=2, default=str)
        return StreamingResponse(
            io.BytesIO(content.encode()),
            media_type="application/json",
            headers={"Content-Disposition": f"attachment; filename={filename}.json"}
        )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    writer.writerows(rows)

    output.seek(0)
    return StreamingResponse(
        io.BytesIO(output.getvalue().encode()),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}.csv"}
    )


# =============================================================================
# Sample Export
# =============================================================================

@router.get("/samples/{metric_name}")
async def export_samples(
    metric_name: str,
    format: str = Query(default="csv", description="csv or json"),
    dispatcher: AlertDispatcher = Depends(get_dispatcher)
):
    store = dispatcher.ingestion.store
    samples = store.recent(metric_name, store.max_samples)

    if not samples:
        raise HTTPException(404, f"No samples for {metric_name}")

    filename = f"samples_{metric_name}_{utcnow().strftime('%Y%m%d_%H%M%S')}"
    header = ["timestamp", "metric_name", "value", "deployment_id"]
    rows = [
        [s.timestamp.isoformat(), s.metric_name, s.value, s.deployment_id or ""]
        for s in samples
    ]
    return _download(rows, header, filename, format)


# =============================================================================
# Fire History Export
# =============================================================================

@router.get("/history")
async def export_history(
    format: str = Query(default="csv", description="csv or json"),
    dispatcher: AlertDispatcher = Depends(get_dispatcher)
):
    events = dispatcher.get_history()

    filename = f"fire_history_{utcnow().strftime('%Y%m%d_%H%M%S')}"
    header = [
        "id", "timestamp", "trigger_name", "metric_name", "condition",
        "current_value", "threshold", "severity", "success", "error", "action_status"
    ]
    rows = [
        [
            e.id, e.timestamp.isoformat(), e.trigger_name, e.metric_name, e.condition,
            e.current_value, e.threshold, e.severity.value, e.success, e.error or "",
            e.action_result.status if e.action_result else ""
        ]
        for e in events
    ]
    return _download(rows, header, filename, format)
