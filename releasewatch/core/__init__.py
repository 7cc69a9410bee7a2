"""
Core Module
Metric ingestion and the in-memory sample store.

Exports:
    Models: MetricSample, Deployment, DataSource, IngestionResult
    Engine: IngestionEngine
    Store: SampleStore
    Converters: to_metric_sample, to_deployment
"""

from .models import (
    MetricSample,
    Deployment,
    DataSource,
    IngestionResult,
    to_metric_sample,
    to_deployment,
    to_utc,
    utcnow,
)

from .buffer import SampleStore
from .engine import IngestionEngine

__all__ = [
    # Models
    "MetricSample",
    "Deployment",
    "DataSource",
    "IngestionResult",
    "to_metric_sample",
    "to_deployment",
    "to_utc",
    "utcnow",
    # Store
    "SampleStore",
    # Engine
    "IngestionEngine",
]
