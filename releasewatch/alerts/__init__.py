"""
Alert System
Trigger rules evaluated against recent metric history.

Structure:
    alerts/
    ├── models.py    → TriggerRule, FireEvent, ActionResult
    ├── actions.py   → Action variants + build_action
    ├── history.py   → FireHistory (bounded event log)
    └── engine.py    → TriggerEngine (evaluation + cooldown state)

Usage:
    from releasewatch.alerts import TriggerEngine, TriggerRule, TriggerCondition

    engine = TriggerEngine(store)
    engine.register(TriggerRule(
        name="error-spike",
        metric_name="error_rate",
        condition=TriggerCondition.ABOVE,
        threshold=0.05,
        cooldown_period=timedelta(minutes=5),
    ))

    # Called once per tick
    fired = await engine.evaluate()
"""

from .models import (
    TriggerRule,
    TriggerRuleSpec,
    TriggerCondition,
    RuleState,
    FireEvent,
    ActionResult,
    AlertSeverity,
)

from .actions import (
    Action,
    ActionContext,
    AlertAction,
    RollbackAction,
    ImpactAnalysisAction,
    LogAction,
    CallableAction,
    build_action,
)

from .history import FireHistory

from .engine import (
    TriggerEngine,
    condition_holds,
    EQUAL_TOLERANCE,
)

__all__ = [
    # Models
    "TriggerRule",
    "TriggerRuleSpec",
    "TriggerCondition",
    "RuleState",
    "FireEvent",
    "ActionResult",
    "AlertSeverity",
    # Actions
    "Action",
    "ActionContext",
    "AlertAction",
    "RollbackAction",
    "ImpactAnalysisAction",
    "LogAction",
    "CallableAction",
    "build_action",
    # History
    "FireHistory",
    # Engine
    "TriggerEngine",
    "condition_holds",
    "EQUAL_TOLERANCE",
]
