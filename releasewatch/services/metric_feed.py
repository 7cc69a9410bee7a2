"""
Metric Feed Service
Connects to a WebSocket metric stream and pushes samples into the dispatcher.

Message formats (JSON):
    {"metric_name": "error_rate", "value": 0.02, "timestamp": "...", "deployment_id": "..."}
    {"type": "deployment", "id": "deploy-42", "version": "1.4.0", ...}

Usage:
    from releasewatch.services import get_metric_feed

    feed = get_metric_feed("wss://metrics.example.com/stream")
    feed.start()        # inside the dispatcher's event loop
    await feed.stop()

Runs as a task on the dispatcher's loop, so ingestion stays serialized
with trigger evaluation.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field

import websockets

from ..core import to_metric_sample, to_deployment, DataSource, utcnow
from .dispatcher import AlertDispatcher, get_dispatcher

logger = logging.getLogger(__name__)


@dataclass
class FeedStats:
    """Metric feed statistics"""
    is_running: bool = False
    url: Optional[str] = None
    samples_received: int = 0
    samples_rejected: int = 0
    deployments_received: int = 0
    samples_per_second: float = 0.0
    last_message_time: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    errors: int = 0
    reconnects: int = 0
    _message_times: List[float] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "url": self.url,
            "samples_received": self.samples_received,
            "samples_rejected": self.samples_rejected,
            "deployments_received": self.deployments_received,
            "samples_per_second": round(self.samples_per_second, 1),
            "last_message_time": self.last_message_time.isoformat() if self.last_message_time else None,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "uptime_seconds": (utcnow() - self.connected_at).total_seconds() if self.connected_at else 0,
            "errors": self.errors,
            "reconnects": self.reconnects,
        }


class MetricFeedService:
    """
    WebSocket metric producer adapter.

    Malformed messages are counted and logged, never fatal;
    dropped connections are retried after `reconnect_delay`.
    """

    def __init__(
        self,
        url: str,
        dispatcher: Optional[AlertDispatcher] = None,
        reconnect_delay: float = 5.0,
        receive_timeout: float = 30.0,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.receive_timeout = receive_timeout
        self._dispatcher = dispatcher
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._ws = None
        self._stats = FeedStats(url=url)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> FeedStats:
        return self._stats

    def start(self) -> Dict[str, Any]:
        """Start consuming on the running event loop"""
        if self._running:
            return {"status": "already_running", "url": self.url}

        if self._dispatcher is None:
            self._dispatcher = get_dispatcher()

        self._stats = FeedStats(is_running=True, url=self.url, connected_at=utcnow())
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._consume())
        logger.info("Metric feed started: %s", self.url)
        return {"status": "started", "url": self.url}

    async def stop(self) -> Dict[str, Any]:
        """Stop the feed and close the connection"""
        if not self._running:
            return {"status": "not_running"}

        self._running = False
        self._stats.is_running = False
        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception:
                logger.debug("Error closing metric feed socket", exc_info=True)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        return {"status": "stopped", "total_samples": self._stats.samples_received}

    async def _consume(self) -> None:
        while self._running:
            try:
                async with websockets.connect(self.url) as ws:
                    self._ws = ws
                    while self._running:
                        try:
                            message = await asyncio.wait_for(ws.recv(), timeout=self.receive_timeout)
                            self.process_message(message)
                        except asyncio.TimeoutError:
                            # Keep the connection alive
                            await ws.ping()
                        except websockets.ConnectionClosed:
                            break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.errors += 1
                logger.warning("Metric feed connection error: %s", e)
            finally:
                self._ws = None

            if self._running:
                self._stats.reconnects += 1
                await asyncio.sleep(self.reconnect_delay)

    def process_message(self, message) -> None:
        """Parse one message and hand it to the dispatcher"""
        try:
            data = json.loads(message)
            if data.get("type") == "deployment":
                self._dispatcher.record_deployment(to_deployment(data))
                self._stats.deployments_received += 1
            else:
                sample = to_metric_sample(data, source=DataSource.FEED)
                accepted = self._dispatcher.record_sample(
                    sample.metric_name, sample.value, sample.timestamp, sample.deployment_id, DataSource.FEED
                )
                if accepted:
                    self._stats.samples_received += 1
                else:
                    self._stats.samples_rejected += 1
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self._stats.errors += 1
            logger.warning("Malformed metric feed message: %s", e)
            return

        now = utcnow()
        self._stats.last_message_time = now
        times = self._stats._message_times
        times.append(now.timestamp())
        self._stats._message_times = [t for t in times if now.timestamp() - t < 1.0]
        self._stats.samples_per_second = len(self._stats._message_times)


# Singleton
_metric_feed: Optional[MetricFeedService] = None


def get_metric_feed(url: Optional[str] = None) -> Optional[MetricFeedService]:
    """Get or create the metric feed singleton (None until a URL is known)"""
    global _metric_feed
    if _metric_feed is None and url:
        _metric_feed = MetricFeedService(url)
    return _metric_feed
