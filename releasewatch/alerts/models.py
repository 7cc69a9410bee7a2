"""
Alert Models
Data structures for trigger rules, fire events, and action results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, TYPE_CHECKING
from enum import Enum
import uuid

from pydantic import BaseModel, Field

from ..core.models import utcnow

if TYPE_CHECKING:
    from .actions import Action


class TriggerCondition(str, Enum):
    """Supported rule conditions"""
    ABOVE = "above"
    BELOW = "below"
    EQUAL = "equal"
    CHANGE_PERCENT = "change_percent"  # |pct change of last two samples| > threshold


class AlertSeverity(str, Enum):
    """Alert severity levels"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RuleState(str, Enum):
    """Externally observable rule state between ticks"""
    DISABLED = "disabled"
    IDLE = "idle"
    COOLDOWN = "cooldown"


@dataclass
class TriggerRule:
    """
    A condition + threshold + action binding evaluated every tick.

    Example:
        "Alert when error_rate is above 0.05, at most once per 5 minutes"

    last_fired_at is only written by the engine; enabled may be
    toggled at any time through the engine.
    """
    name: str
    metric_name: str
    condition: TriggerCondition
    threshold: float
    lookback_window: int = 1
    cooldown_period: timedelta = timedelta(minutes=5)
    enabled: bool = True
    action: Optional["Action"] = None
    severity: AlertSeverity = AlertSeverity.WARNING
    description: str = ""
    last_fired_at: Optional[datetime] = None
    fire_count: int = 0
    created_at: datetime = field(default_factory=utcnow)

    @property
    def required_samples(self) -> int:
        """change_percent needs two points regardless of lookback_window"""
        if self.condition == TriggerCondition.CHANGE_PERCENT:
            return max(self.lookback_window, 2)
        return self.lookback_window

    def in_cooldown(self, now: datetime) -> bool:
        if self.last_fired_at is None:
            return False
        return now - self.last_fired_at < self.cooldown_period

    def state(self, now: datetime) -> RuleState:
        if not self.enabled:
            return RuleState.DISABLED
        if self.in_cooldown(now):
            return RuleState.COOLDOWN
        return RuleState.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "metric_name": self.metric_name,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "lookback_window": self.lookback_window,
            "cooldown_seconds": self.cooldown_period.total_seconds(),
            "enabled": self.enabled,
            "action": self.action.name if self.action else None,
            "severity": self.severity.value,
            "description": self.description,
            "last_fired_at": self.last_fired_at.isoformat() if self.last_fired_at else None,
            "fire_count": self.fire_count,
            "created_at": self.created_at.isoformat(),
        }


class TriggerRuleSpec(BaseModel):
    """
    Declarative rule configuration accepted by register_trigger.

    The action is chosen by its explicit `type`, see actions.build_action.
    """
    name: str
    metric_name: str
    condition: str
    threshold: Any
    lookback_window: int = 1
    cooldown_seconds: float = 300.0
    enabled: bool = True
    severity: str = "warning"
    description: str = ""
    action: Optional[Dict[str, Any]] = Field(default=None, description="e.g. {'type': 'alert'}")

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "error-rate-spike",
                "metric_name": "error_rate",
                "condition": "above",
                "threshold": 0.05,
                "lookback_window": 1,
                "cooldown_seconds": 300,
                "action": {"type": "alert"},
            }
        }
    }


@dataclass(frozen=True)
class ActionResult:
    """What an action reports back; stored on the FireEvent."""
    status: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "detail": dict(self.detail)}


@dataclass(frozen=True)
class FireEvent:
    """
    A fired trigger.

    Never mutated: the post-action record is a new instance.
    """
    trigger_name: str
    metric_name: str
    condition: str
    current_value: float
    threshold: float
    timestamp: datetime
    severity: AlertSeverity = AlertSeverity.WARNING
    action_result: Optional[ActionResult] = None
    error: Optional[str] = None
    success: bool = True
    id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:8]}")

    @property
    def message(self) -> str:
        if self.condition == TriggerCondition.CHANGE_PERCENT.value:
            return (
                f"{self.metric_name} changed {self.current_value:.2f}% "
                f"(limit {self.threshold}%) [{self.trigger_name}]"
            )
        return (
            f"{self.metric_name} {self.condition} {self.threshold} "
            f"(value: {self.current_value:.4g}) [{self.trigger_name}]"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trigger_name": self.trigger_name,
            "metric_name": self.metric_name,
            "condition": self.condition,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "message": self.message,
            "action_result": self.action_result.to_dict() if self.action_result else None,
            "error": self.error,
            "success": self.success,
        }

    @classmethod
    def from_rule(cls, rule: TriggerRule, value: float, now: datetime) -> "FireEvent":
        """Create event from a rule whose condition held"""
        return cls(
            trigger_name=rule.name,
            metric_name=rule.metric_name,
            condition=rule.condition.value,
            current_value=value,
            threshold=rule.threshold,
            timestamp=now,
            severity=rule.severity,
        )
