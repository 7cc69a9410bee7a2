"""
Trigger Actions
What a rule does when its condition holds.

Variants:
    AlertAction           → notification sink
    RollbackAction        → deployment manager (optionally risk-gated)
    ImpactAnalysisAction  → attaches the latest deployment's impact summary
    LogAction             → log only
    CallableAction        → wraps a plain or async callable

Actions raise on failure; the engine turns the exception into
FireEvent(success=False). Blocking collaborator calls go through
asyncio.to_thread so the engine's timeout applies to them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from .models import FireEvent, ActionResult, AlertSeverity
from ..analytics.models import RiskLevel
from ..exceptions import ActionFailure, ConfigurationError

if TYPE_CHECKING:
    from ..analytics.impact import DeploymentImpactAnalyzer
    from ..core.models import Deployment
    from ..services.collaborators import DeploymentManager, NotificationSink

logger = logging.getLogger(__name__)

DeploymentLookup = Callable[[], Optional["Deployment"]]


class Action(ABC):
    """Single-method capability: execute(event) -> ActionResult"""

    name = "action"

    @abstractmethod
    async def execute(self, event: FireEvent) -> ActionResult:
        ...


class AlertAction(Action):
    name = "alert"

    def __init__(self, sink: "NotificationSink"):
        self.sink = sink

    async def execute(self, event: FireEvent) -> ActionResult:
        payload = event.to_dict()
        ack = await asyncio.to_thread(self.sink.notify, payload)
        if not ack:
            raise ActionFailure("notification sink did not acknowledge alert")
        return ActionResult("notified", {"sink": type(self.sink).__name__})


class RollbackAction(Action):
    """
    Ask the deployment manager to roll back the most recent deployment.

    With min_risk set, the rollback only happens when the deployment's
    impact report is at least that risky; otherwise the result is "skipped".
    """

    name = "rollback"

    def __init__(
        self,
        manager: "DeploymentManager",
        latest_deployment: DeploymentLookup,
        analyzer: Optional["DeploymentImpactAnalyzer"] = None,
        min_risk: Optional[RiskLevel] = None,
    ):
        if min_risk is not None and analyzer is None:
            raise ConfigurationError("risk-gated rollback needs an impact analyzer")
        self.manager = manager
        self.latest_deployment = latest_deployment
        self.analyzer = analyzer
        self.min_risk = min_risk

    async def execute(self, event: FireEvent) -> ActionResult:
        deployment = self.latest_deployment()
        deployment_id = deployment.id if deployment else None

        if self.min_risk is not None:
            if deployment is None:
                return ActionResult("skipped", {"reason": "no deployment recorded"})
            report = self.analyzer.analyze(deployment.id)
            if report.risk_level.rank < self.min_risk.rank:
                return ActionResult("skipped", {
                    "reason": f"risk {report.risk_level.value} below {self.min_risk.value}",
                    **report.summary(),
                })

        response = await asyncio.to_thread(self.manager.rollback, deployment_id)
        if not isinstance(response, dict):
            response = {}
        status = str(response.get("status", "unknown"))
        if status.lower() in ("failed", "error"):
            raise ActionFailure(f"rollback of {deployment_id} reported {status}")

        logger.warning("Rollback requested for %s by %s: %s", deployment_id, event.trigger_name, status)
        return ActionResult("rolled_back", {
            "deployment_id": deployment_id,
            "status": status,
            "version": response.get("version"),
        })


class ImpactAnalysisAction(Action):
    name = "impact_analysis"

    def __init__(self, analyzer: "DeploymentImpactAnalyzer", latest_deployment: DeploymentLookup):
        self.analyzer = analyzer
        self.latest_deployment = latest_deployment

    async def execute(self, event: FireEvent) -> ActionResult:
        deployment = self.latest_deployment()
        if deployment is None:
            return ActionResult("skipped", {"reason": "no deployment recorded"})
        report = self.analyzer.analyze(deployment.id)
        return ActionResult("analyzed", report.summary())


_SEVERITY_LEVELS = {
    AlertSeverity.INFO: logging.INFO,
    AlertSeverity.WARNING: logging.WARNING,
    AlertSeverity.CRITICAL: logging.CRITICAL,
}


class LogAction(Action):
    name = "log"

    async def execute(self, event: FireEvent) -> ActionResult:
        logger.log(_SEVERITY_LEVELS.get(event.severity, logging.WARNING), event.message)
        return ActionResult("logged")


class CallableAction(Action):
    """
    Adapter for user callables.

    Return values: ActionResult as-is, dict becomes the detail,
    False is a failure, anything else is wrapped.
    """

    def __init__(self, fn: Callable[[FireEvent], Any], name: Optional[str] = None):
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "callable")

    async def execute(self, event: FireEvent) -> ActionResult:
        if inspect.iscoroutinefunction(self.fn):
            result = await self.fn(event)
        else:
            result = await asyncio.to_thread(self.fn, event)
        # Callable objects with an async __call__ hand back a coroutine
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, ActionResult):
            return result
        if result is False:
            raise ActionFailure(f"{self.name} returned False")
        if isinstance(result, dict):
            return ActionResult("ok", result)
        if result is None or result is True:
            return ActionResult("ok")
        return ActionResult("ok", {"result": result})


# =============================================================================
# Configuration → Action
# =============================================================================

@dataclass
class ActionContext:
    """Collaborators available to configured actions."""
    notification_sink: Optional["NotificationSink"] = None
    deployment_manager: Optional["DeploymentManager"] = None
    analyzer: Optional["DeploymentImpactAnalyzer"] = None
    latest_deployment: Optional[DeploymentLookup] = None


def build_action(config: Optional[Dict[str, Any]], context: ActionContext) -> Optional[Action]:
    """
    Build an action from explicit configuration.

    {"type": "alert"}
    {"type": "rollback", "min_risk": "high"}
    {"type": "impact_analysis"}
    {"type": "log"}

    Raises:
        ConfigurationError: unknown type or missing collaborator
    """
    if not config:
        return None

    action_type = config.get("type")

    if action_type == "log":
        return LogAction()

    if action_type == "alert":
        if context.notification_sink is None:
            raise ConfigurationError("alert action needs a notification sink")
        return AlertAction(context.notification_sink)

    if action_type == "impact_analysis":
        if context.analyzer is None or context.latest_deployment is None:
            raise ConfigurationError("impact_analysis action needs an analyzer")
        return ImpactAnalysisAction(context.analyzer, context.latest_deployment)

    if action_type == "rollback":
        if context.deployment_manager is None or context.latest_deployment is None:
            raise ConfigurationError("rollback action needs a deployment manager")
        min_risk = config.get("min_risk")
        if min_risk is not None:
            try:
                min_risk = RiskLevel(min_risk)
            except ValueError:
                raise ConfigurationError(f"Invalid min_risk: {min_risk}. Use: low, medium, high")
        return RollbackAction(
            context.deployment_manager,
            context.latest_deployment,
            analyzer=context.analyzer,
            min_risk=min_risk,
        )

    raise ConfigurationError(
        f"Invalid action type: {action_type}. Use: alert, rollback, impact_analysis, log"
    )
