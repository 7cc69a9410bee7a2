"""
In-Memory Sample Store
Fast, bounded, metric-keyed storage for trigger evaluation and impact analysis.

Purpose:
- Trigger rules need the last N samples
- Impact analysis needs time windows around a deployment
- No disk I/O allowed here

This is READ-OPTIMIZED, NOT DURABLE.
"""

import bisect
import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from .models import MetricSample, DataSource, to_utc, utcnow

logger = logging.getLogger(__name__)


def _ts(sample: MetricSample) -> datetime:
    return sample.timestamp


class SampleStore:
    """
    Per-metric bounded time series.

    - Series are kept in timestamp order (late samples are inserted in place)
    - Soft eviction: once a series exceeds `max_samples` it is cut back
      to the most recent `retain_samples`, so eviction runs rarely
    - Single event loop access only, no locking

    Usage:
        store = SampleStore(max_samples=100)
        store.record("error_rate", 0.01)
        recent = store.recent("error_rate", 5)
    """

    def __init__(self, max_samples: int = 100, retain_samples: Optional[int] = None):
        if max_samples < 1:
            raise ValueError("max_samples must be >= 1")
        if retain_samples is None:
            retain_samples = max(1, max_samples // 2)
        if not 0 < retain_samples <= max_samples:
            raise ValueError("retain_samples must be in [1, max_samples]")

        self.max_samples = max_samples
        self.retain_samples = retain_samples
        self._data: Dict[str, List[MetricSample]] = {}
        self._count: int = 0
        self._rejected: int = 0
        self._evicted: int = 0

    def record(
        self,
        metric_name: str,
        value: float,
        timestamp: Optional[datetime] = None,
        deployment_id: Optional[str] = None,
        source: DataSource = DataSource.API,
    ) -> bool:
        """
        Record a sample. Never raises.

        Returns False when the sample was rejected (bad name or value).
        """
        sample = self.build_sample(metric_name, value, timestamp, deployment_id, source)
        if sample is None:
            return False
        self.append(sample)
        return True

    def build_sample(
        self,
        metric_name: str,
        value: float,
        timestamp: Optional[datetime] = None,
        deployment_id: Optional[str] = None,
        source: DataSource = DataSource.API,
    ) -> Optional[MetricSample]:
        """Validate inputs into a MetricSample, or None (counted as rejected)"""
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = math.nan
        if not math.isfinite(value) or not metric_name:
            self._rejected += 1
            logger.warning("Rejected sample for %r: value=%r", metric_name, value)
            return None

        try:
            return MetricSample(
                metric_name=metric_name,
                value=value,
                timestamp=timestamp if timestamp is not None else utcnow(),
                deployment_id=deployment_id,
                source=source,
            )
        except ValueError as e:
            self._rejected += 1
            logger.warning("Rejected sample for %r: %s", metric_name, e)
            return None

    def append(self, sample: MetricSample) -> None:
        """Add a pre-built sample, evicting if the series is over capacity"""
        series = self._data.setdefault(sample.metric_name, [])

        if not series or series[-1].timestamp <= sample.timestamp:
            series.append(sample)
        else:
            bisect.insort_right(series, sample, key=_ts)

        self._count += 1

        if len(series) > self.max_samples:
            drop = len(series) - self.retain_samples
            del series[:drop]
            self._evicted += drop
            logger.debug("Evicted %d samples from %s", drop, sample.metric_name)

    def recent(self, metric_name: str, n: int) -> List[MetricSample]:
        """Last n samples in chronological order (fewer if unavailable)"""
        if n <= 0:
            return []
        series = self._data.get(metric_name)
        if not series:
            return []
        return series[-n:]

    def window(self, metric_name: str, start: datetime, end: datetime) -> List[MetricSample]:
        """All samples with start <= timestamp <= end (naive bounds are UTC)"""
        series = self._data.get(metric_name)
        start, end = to_utc(start), to_utc(end)
        if not series or start > end:
            return []
        lo = bisect.bisect_left(series, start, key=_ts)
        hi = bisect.bisect_right(series, end, key=_ts)
        return series[lo:hi]

    def latest(self, metric_name: str) -> Optional[MetricSample]:
        """Most recent sample"""
        series = self._data.get(metric_name)
        if not series:
            return None
        return series[-1]

    def values(self, metric_name: str, n: Optional[int] = None) -> List[float]:
        """Value array for analytics"""
        series = self._data.get(metric_name, [])
        if n is not None:
            series = series[-n:] if n > 0 else []
        return [s.value for s in series]

    def metrics(self) -> List[str]:
        """List all metrics in the store"""
        return list(self._data.keys())

    def count(self, metric_name: Optional[str] = None) -> int:
        """Current series length, or total samples ever accepted"""
        if metric_name:
            return len(self._data.get(metric_name, []))
        return self._count

    def clear(self, metric_name: Optional[str] = None) -> None:
        """Clear store"""
        if metric_name:
            self._data.pop(metric_name, None)
        else:
            self._data.clear()
            self._count = 0

    def stats(self) -> dict:
        """Store statistics"""
        return {
            "total_samples": self._count,
            "rejected": self._rejected,
            "evicted": self._evicted,
            "metrics": len(self._data),
            "per_metric": {name: len(s) for name, s in self._data.items()},
            "max_samples": self.max_samples,
            "retain_samples": self.retain_samples,
        }
