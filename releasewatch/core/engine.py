import logging
from typing import List, Dict, Optional, Callable, Any
from datetime import datetime

from .models import MetricSample, Deployment, DataSource, IngestionResult, utcnow
from .buffer import SampleStore
from ..exceptions import NotFoundError

logger = logging.getLogger(__name__)

OnSampleCallback = Callable[[MetricSample], None]
OnDeploymentCallback = Callable[[Deployment], None]


class IngestionEngine:
    def __init__(
        self,
        max_samples: int = 100,
        retain_samples: Optional[int] = None,
        store: Optional[SampleStore] = None,
    ):
        self._store = store or SampleStore(max_samples=max_samples, retain_samples=retain_samples)
        self._deployments: Dict[str, Deployment] = {}
        self._on_sample: List[OnSampleCallback] = []
        self._on_deployment: List[OnDeploymentCallback] = []
        self._stats = {
            "samples_ingested": 0,
            "samples_rejected": 0,
            "deployments_recorded": 0,
            "errors": 0,
            "start_time": utcnow()
        }

    @property
    def store(self) -> SampleStore:
        return self._store

    def ingest(
        self,
        metric_name: str,
        value: float,
        timestamp: Optional[datetime] = None,
        deployment_id: Optional[str] = None,
        source: DataSource = DataSource.API,
    ) -> bool:
        sample = self._store.build_sample(metric_name, value, timestamp, deployment_id, source)
        if sample is None:
            self._stats["samples_rejected"] += 1
            return False

        self._store.append(sample)
        self._stats["samples_ingested"] += 1
        for callback in self._on_sample:
            try:
                callback(sample)
            except Exception:
                self._stats["errors"] += 1
                logger.exception("Sample callback failed for %s", metric_name)
        return True

    def ingest_sample(self, sample: MetricSample) -> bool:
        return self.ingest(
            sample.metric_name, sample.value, sample.timestamp, sample.deployment_id, sample.source
        )

    def ingest_batch(self, samples: List[MetricSample]) -> IngestionResult:
        if not samples:
            return IngestionResult(success=True, count=0, message="No samples")

        errors = 0
        for sample in samples:
            if not self.ingest_sample(sample):
                errors += 1

        metrics = sorted(set(s.metric_name for s in samples))
        return IngestionResult(
            success=errors == 0,
            count=len(samples) - errors,
            errors=errors,
            metrics=metrics,
            message=f"Ingested {len(samples) - errors} samples"
        )

    def record_deployment(self, deployment: Deployment) -> Deployment:
        existing = self._deployments.get(deployment.id)
        if existing is not None:
            # Notifier re-sends are ignored; deployments are immutable
            logger.info("Deployment %s already recorded", deployment.id)
            return existing

        self._deployments[deployment.id] = deployment
        self._stats["deployments_recorded"] += 1
        logger.info(
            "Deployment recorded: %s (%s %s)",
            deployment.id, deployment.environment, deployment.version
        )

        for callback in self._on_deployment:
            try:
                callback(deployment)
            except Exception:
                self._stats["errors"] += 1
                logger.exception("Deployment callback failed for %s", deployment.id)
        return deployment

    def get_deployment(self, deployment_id: str) -> Deployment:
        deployment = self._deployments.get(deployment_id)
        if deployment is None:
            raise NotFoundError("Deployment", deployment_id)
        return deployment

    def get_deployments(self) -> List[Deployment]:
        return sorted(self._deployments.values(), key=lambda d: d.timestamp)

    def latest_deployment(self, environment: Optional[str] = None) -> Optional[Deployment]:
        deployments = [
            d for d in self._deployments.values()
            if environment is None or d.environment == environment
        ]
        if not deployments:
            return None
        return max(deployments, key=lambda d: d.timestamp)

    def get_samples(self, metric_name: str, limit: int = 100) -> List[MetricSample]:
        return self._store.recent(metric_name, limit)

    def get_metrics(self) -> List[str]:
        return sorted(self._store.metrics())

    def on_sample(self, callback: OnSampleCallback) -> None:
        self._on_sample.append(callback)

    def on_deployment(self, callback: OnDeploymentCallback) -> None:
        self._on_deployment.append(callback)

    def clear(self, metric_name: Optional[str] = None) -> None:
        self._store.clear(metric_name)

    def stats(self) -> Dict[str, Any]:
        uptime = (utcnow() - self._stats["start_time"]).total_seconds()
        return {
            **{k: v for k, v in self._stats.items() if k != "start_time"},
            "uptime_seconds": round(uptime, 2),
            "store": self._store.stats(),
            "metrics": self.get_metrics(),
            "deployments": len(self._deployments),
        }
