"""
Analytics Output Types
Dataclasses for comparator and impact-analysis results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Any


# =============================================================================
# COMPARATOR OUTPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class ZTestResult:
    """
    Two-proportion z-test result.

    significant is p_value < 0.05 (two-sided)
    """
    z: float
    p_value: float
    significant: bool


@dataclass(frozen=True)
class VariantComparison:
    """
    A/B comparison of two conversion rates.

    effect_size = rate_b - rate_a
    """
    rate_a: float
    rate_b: float
    z: float
    p_value: float
    significant: bool
    effect_size: float
    lift_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate_a": round(self.rate_a, 6),
            "rate_b": round(self.rate_b, 6),
            "z": round(self.z, 4),
            "p_value": round(self.p_value, 6),
            "significant": self.significant,
            "effect_size": round(self.effect_size, 6),
            "lift_percent": round(self.lift_percent, 4),
        }


# =============================================================================
# IMPACT ANALYSIS OUTPUT TYPES
# =============================================================================

class RiskLevel(str, Enum):
    """Deployment risk classification"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]


class MetricCategory(str, Enum):
    """Coarse metric family, used to decide what counts as adverse"""
    ERROR = "error"
    LATENCY = "latency"
    ENGAGEMENT = "engagement"
    OTHER = "other"


class ChangeDirection(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    FLAT = "flat"


@dataclass(frozen=True)
class MetricImpact:
    """Before/after summary for one metric."""
    before: float
    after: float
    change_percent: float
    significant: bool
    direction: ChangeDirection
    category: MetricCategory
    before_count: int
    after_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "before": self.before,
            "after": self.after,
            "change_percent": round(self.change_percent, 4),
            "significant": self.significant,
            "direction": self.direction.value,
            "category": self.category.value,
            "before_count": self.before_count,
            "after_count": self.after_count,
        }


@dataclass(frozen=True)
class SignificantChange:
    """A metric that moved more than the materiality threshold."""
    metric_name: str
    change_percent: float
    direction: ChangeDirection
    category: MetricCategory
    adverse: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "change_percent": round(self.change_percent, 4),
            "direction": self.direction.value,
            "category": self.category.value,
            "adverse": self.adverse,
        }


@dataclass
class ImpactReport:
    """
    Statistical before/after summary correlated to a deployment.

    Computed on demand, never persisted. Contains no wall-clock
    field so repeated analysis over unchanged data compares equal.
    """
    deployment_id: str
    environment: str
    version: str
    per_metric: Dict[str, MetricImpact] = field(default_factory=dict)
    significant_changes: List[SignificantChange] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: List[str] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def adverse_count(self) -> int:
        return sum(1 for c in self.significant_changes if c.adverse)

    def summary(self) -> Dict[str, Any]:
        """Compact form attached to action results"""
        return {
            "deployment_id": self.deployment_id,
            "risk_level": self.risk_level.value,
            "significant_changes": [c.metric_name for c in self.significant_changes],
            "confidence": round(self.confidence, 4),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "environment": self.environment,
            "version": self.version,
            "per_metric": {k: v.to_dict() for k, v in self.per_metric.items()},
            "significant_changes": [c.to_dict() for c in self.significant_changes],
            "risk_level": self.risk_level.value,
            "recommendations": list(self.recommendations),
            "confidence": round(self.confidence, 4),
        }
