"""
Deployment Impact Analysis
Before/after comparison of every tracked metric around a deployment.

Windows (defaults):
    before = [t0 - 1h, t0]
    after  = [t0 + 1min, t0 + 30min]

Fixed wall-clock offsets; no DST or clock-skew handling.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from . import comparator
from .models import (
    ImpactReport,
    MetricImpact,
    SignificantChange,
    RiskLevel,
    MetricCategory,
    ChangeDirection,
)
from ..core.buffer import SampleStore
from ..core.models import Deployment

logger = logging.getLogger(__name__)


# Substring → category. First match wins, checked in this order.
CATEGORY_KEYWORDS: Dict[MetricCategory, Tuple[str, ...]] = {
    MetricCategory.ERROR: ("error", "failure", "exception", "crash"),
    MetricCategory.LATENCY: ("latency", "duration", "response_time"),
    MetricCategory.ENGAGEMENT: ("conversion", "dau", "active_users", "retention", "revenue", "signup"),
}

# (direction, category) → recommendation template
RECOMMENDATIONS: Dict[Tuple[ChangeDirection, MetricCategory], str] = {
    (ChangeDirection.INCREASE, MetricCategory.ERROR):
        "{metric} increased {change:.1f}% after deployment - investigate immediately",
    (ChangeDirection.DECREASE, MetricCategory.ERROR):
        "{metric} decreased {change:.1f}% after deployment - fix appears effective",
    (ChangeDirection.INCREASE, MetricCategory.LATENCY):
        "{metric} regressed {change:.1f}% after deployment - profile the changed code paths",
    (ChangeDirection.DECREASE, MetricCategory.LATENCY):
        "{metric} improved {change:.1f}% after deployment",
    (ChangeDirection.DECREASE, MetricCategory.ENGAGEMENT):
        "{metric} dropped {change:.1f}% after deployment - review user-facing changes",
    (ChangeDirection.INCREASE, MetricCategory.ENGAGEMENT):
        "{metric} rose {change:.1f}% after deployment - consider expanding the rollout",
}

RISK_RECOMMENDATIONS: Dict[RiskLevel, str] = {
    RiskLevel.HIGH: "High deployment risk - consider rollback",
    RiskLevel.MEDIUM: "Moderate deployment risk - monitor closely before widening exposure",
}

NO_DATA_RECOMMENDATION = "Insufficient metric data around the deployment - collect more samples before deciding"
NO_CHANGE_RECOMMENDATION = "No significant metric changes detected"


def categorize(metric_name: str) -> MetricCategory:
    """Map a metric name to its category by keyword"""
    name = metric_name.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in name for k in keywords):
            return category
    return MetricCategory.OTHER


def direction_of(change_percent: float) -> ChangeDirection:
    if change_percent > 0:
        return ChangeDirection.INCREASE
    if change_percent < 0:
        return ChangeDirection.DECREASE
    return ChangeDirection.FLAT


def is_adverse(direction: ChangeDirection, category: MetricCategory) -> bool:
    """Error/latency going up, or engagement going down"""
    if category in (MetricCategory.ERROR, MetricCategory.LATENCY):
        return direction == ChangeDirection.INCREASE
    if category == MetricCategory.ENGAGEMENT:
        return direction == ChangeDirection.DECREASE
    return False


def classify_risk(adverse_count: int) -> RiskLevel:
    if adverse_count > 2:
        return RiskLevel.HIGH
    if adverse_count > 0:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def confidence_score(metrics_count: int, significant_count: int) -> float:
    """
    More metrics raise confidence, more significant changes lower it
    (they call for investigation). Clamped to [0, 1].
    """
    raw = min(1.0, metrics_count * 0.2) - min(0.5, significant_count * 0.1)
    return max(0.0, min(1.0, raw))


class DeploymentImpactAnalyzer:
    """
    Correlates a deployment with sample-store windows.

    Usage:
        analyzer = DeploymentImpactAnalyzer(store, ingestion.get_deployment)
        report = analyzer.analyze("deploy-42")
    """

    def __init__(
        self,
        store: SampleStore,
        deployment_lookup,
        tracked_metrics: Optional[Sequence[str]] = None,
        before_window: timedelta = timedelta(hours=1),
        after_window: timedelta = timedelta(minutes=30),
        after_offset: timedelta = timedelta(minutes=1),
        materiality_percent: float = 5.0,
    ):
        """
        Args:
            store: Sample store to read windows from
            deployment_lookup: Callable id -> Deployment, raising NotFoundError
            tracked_metrics: Metrics to analyze (default: every metric in the store)
            before_window: Span before the deployment
            after_window: End of the after window, relative to the deployment
            after_offset: Start of the after window, relative to the deployment
            materiality_percent: |change| above this is significant
        """
        if after_offset >= after_window:
            raise ValueError("after_offset must be shorter than after_window")

        self._store = store
        self._lookup = deployment_lookup
        self._tracked = list(tracked_metrics) if tracked_metrics else None
        self.before_window = before_window
        self.after_window = after_window
        self.after_offset = after_offset
        self.materiality_percent = materiality_percent

    def tracked_metrics(self) -> List[str]:
        if self._tracked is not None:
            return sorted(self._tracked)
        return sorted(self._store.metrics())

    def analyze(self, deployment_id: str) -> ImpactReport:
        """
        Build the impact report for a recorded deployment.

        Raises:
            NotFoundError: deployment was never recorded
        """
        deployment: Deployment = self._lookup(deployment_id)
        t0 = deployment.timestamp

        per_metric: Dict[str, MetricImpact] = {}
        for metric in self.tracked_metrics():
            impact = self._metric_impact(metric, t0)
            if impact is not None:
                per_metric[metric] = impact

        significant = [
            SignificantChange(
                metric_name=name,
                change_percent=impact.change_percent,
                direction=impact.direction,
                category=impact.category,
                adverse=is_adverse(impact.direction, impact.category),
            )
            for name, impact in per_metric.items()
            if impact.significant
        ]

        risk = classify_risk(sum(1 for c in significant if c.adverse))

        report = ImpactReport(
            deployment_id=deployment.id,
            environment=deployment.environment,
            version=deployment.version,
            per_metric=per_metric,
            significant_changes=significant,
            risk_level=risk,
            recommendations=self._recommend(per_metric, significant, risk),
            confidence=confidence_score(len(per_metric), len(significant)),
        )

        logger.info(
            "Impact analysis for %s: risk=%s metrics=%d significant=%d",
            deployment.id, risk.value, len(per_metric), len(significant)
        )
        return report

    def _metric_impact(self, metric: str, t0) -> Optional[MetricImpact]:
        before_samples = self._store.window(metric, t0 - self.before_window, t0)
        after_samples = self._store.window(metric, t0 + self.after_offset, t0 + self.after_window)

        before = comparator.mean([s.value for s in before_samples])
        after = comparator.mean([s.value for s in after_samples])
        if before is None or after is None:
            return None

        change = comparator.percent_change(before, after)
        return MetricImpact(
            before=before,
            after=after,
            change_percent=change,
            significant=abs(change) > self.materiality_percent,
            direction=direction_of(change),
            category=categorize(metric),
            before_count=len(before_samples),
            after_count=len(after_samples),
        )

    def _recommend(
        self,
        per_metric: Dict[str, MetricImpact],
        significant: List[SignificantChange],
        risk: RiskLevel
    ) -> List[str]:
        if not per_metric:
            return [NO_DATA_RECOMMENDATION]

        recommendations = []
        for change in significant:
            template = RECOMMENDATIONS.get((change.direction, change.category))
            if template:
                recommendations.append(
                    template.format(metric=change.metric_name, change=abs(change.change_percent))
                )

        if risk in RISK_RECOMMENDATIONS:
            recommendations.append(RISK_RECOMMENDATIONS[risk])

        if not significant:
            recommendations.append(NO_CHANGE_RECOMMENDATION)

        return recommendations
