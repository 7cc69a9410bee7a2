"""
Alerts API
Fire history and real-time alert streaming.

Endpoints:
    GET    /api/alerts/history   → FireEvents, oldest first (optional ?since=)
    DELETE /api/alerts/history   → Clear history
    GET    /api/alerts/stream    → SSE stream for real-time alerts
    GET    /api/alerts/stats     → Dispatcher + engine statistics
    POST   /api/alerts/tick      → Run one evaluation pass now
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..core import to_utc
from ..services import AlertDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


# =============================================================================
# Alert History
# =============================================================================

@router.get("/history")
async def get_history(
    since: Optional[datetime] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=5000),
    dispatcher: AlertDispatcher = Depends(get_dispatcher)
):
    """FireEvents in chronological order; the newest `limit` are returned"""
    history = dispatcher.get_history(to_utc(since) if since else None)
    history = history[-limit:]

    return {
        "count": len(history),
        "events": [e.to_dict() for e in history]
    }


@router.delete("/history")
async def clear_history(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    dispatcher.triggers.clear_history()
    return {"message": "Alert history cleared"}


# =============================================================================
# SSE Stream
# =============================================================================

@router.get("/stream")
async def stream_alerts(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """
    Server-Sent Events stream for real-time alerts.

    Connect via EventSource in browser:
        const es = new EventSource('/api/alerts/stream');
        es.onmessage = (e) => console.log(JSON.parse(e.data));
    """

    async def event_generator():
        yield f"data: {json.dumps({'type': 'connected', 'message': 'Alert stream connected'})}\n\n"

        while True:
            try:
                # Wait for event with timeout (for keepalive)
                event = await dispatcher.get_event(timeout=30.0)

                if event:
                    yield f"data: {json.dumps(event.to_dict())}\n\n"
                else:
                    yield ": keepalive\n\n"

            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Alert stream error")
                await asyncio.sleep(1)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )


# =============================================================================
# Management
# =============================================================================

@router.get("/stats")
async def get_stats(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    return dispatcher.stats()


@router.post("/tick")
async def run_tick(dispatcher: AlertDispatcher = Depends(get_dispatcher)):
    """
    Evaluate all rules immediately.

    Useful for testing rules without waiting for the loop.
    """
    fired = await dispatcher.tick()
    return {
        "fired_count": len(fired),
        "fired": [e.to_dict() for e in fired]
    }
