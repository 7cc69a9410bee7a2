"""
Domain Models
The SINGLE SOURCE OF TRUTH for ingested data formats.

After normalization, the engine only sees these types.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, FrozenSet, Any, Dict
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    """Timezone-aware wall-clock time used across the engine."""
    return datetime.now(timezone.utc)


def to_utc(value: Any) -> datetime:
    """
    Normalize a timestamp to an aware UTC datetime.

    Accepts datetimes (naive = UTC), ISO strings, and Unix
    timestamps in seconds or milliseconds.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if value > 1e12:
            value = value / 1000
        try:
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# =============================================================================
# Data Source
# =============================================================================

class DataSource(str, Enum):
    """Where data came from, tagged at entry, never changes"""
    API = "api"
    FEED = "feed"
    INTERNAL = "internal"


# =============================================================================
# MetricSample: The Core Data Contract
# =============================================================================

class MetricSample(BaseModel):
    """
    A single timestamped metric measurement.

    Immutable once created. The store appends these, never mutates them.

    Fields:
        metric_name: Metric identifier (error_rate, conversion_rate, ...)
        value: Measured value
        timestamp: Aware UTC datetime
        deployment_id: Optional deployment the sample is attributed to
        source: Where it came from
    """
    model_config = ConfigDict(frozen=True)

    metric_name: str = Field(..., min_length=1, max_length=200)
    value: float = Field(..., allow_inf_nan=False)
    timestamp: datetime = Field(default_factory=utcnow)
    deployment_id: Optional[str] = None
    source: DataSource = DataSource.API

    @field_validator('metric_name', mode='before')
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('timestamp', mode='before')
    @classmethod
    def parse_timestamp(cls, v):
        """Handle various timestamp formats"""
        if v is None:
            return utcnow()
        return to_utc(v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "deployment_id": self.deployment_id,
        }


# =============================================================================
# Deployment: pushed once by the CI/CD notifier
# =============================================================================

class Deployment(BaseModel):
    """
    A deployment notification.

    Created once per deployment, immutable, retained for impact analysis.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    environment: str = "production"
    version: str = ""
    features: FrozenSet[str] = frozenset()

    @field_validator('timestamp', mode='before')
    @classmethod
    def parse_timestamp(cls, v):
        if v is None:
            return utcnow()
        return to_utc(v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
            "version": self.version,
            "features": sorted(self.features),
        }


# =============================================================================
# API Response Models
# =============================================================================

class IngestionResult(BaseModel):
    """Result of batch ingestion"""
    success: bool = True
    count: int = 0
    errors: int = 0
    metrics: List[str] = []
    message: str = ""


# =============================================================================
# Converters: External → Internal
# =============================================================================

def to_metric_sample(data: dict, source: DataSource = DataSource.API) -> MetricSample:
    """
    Convert an external payload to a MetricSample.

    This is the NORMALIZATION POINT for producers.

    Handles:
    - metric_name/metric/name field variants
    - timestamp/ts/time field variants
    - type coercion
    """
    name = data.get('metric_name') or data.get('metric') or data.get('name')
    ts = data.get('timestamp') or data.get('ts') or data.get('time')

    return MetricSample(
        metric_name=name,
        value=float(data['value']),
        timestamp=ts,
        deployment_id=str(data['deployment_id']) if data.get('deployment_id') else None,
        source=source
    )


def to_deployment(data: dict) -> Deployment:
    """Convert an external deployment notification to a Deployment"""
    ts = data.get('timestamp') or data.get('ts') or data.get('time')

    return Deployment(
        id=str(data.get('id') or data['deployment_id']),
        timestamp=ts,
        environment=data.get('environment', 'production'),
        version=str(data.get('version', '')),
        features=frozenset(data.get('features') or ())
    )
