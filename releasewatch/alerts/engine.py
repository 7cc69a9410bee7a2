import asyncio
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any, Callable

from .models import (
    TriggerRule,
    TriggerCondition,
    RuleState,
    FireEvent,
)
from .actions import Action
from .history import FireHistory
from ..analytics.comparator import percent_change
from ..core.buffer import SampleStore
from ..core.models import utcnow
from ..exceptions import ConfigurationError, NotFoundError, ActionTimeout

logger = logging.getLogger(__name__)

EQUAL_TOLERANCE = 1e-3


def condition_holds(rule: TriggerRule, values: List[float]) -> Optional[float]:
    """
    Evaluate a rule against its lookback values (oldest first).

    Returns the observed quantity when the condition holds, else None.
    For change_percent that quantity is the signed percent change.
    """
    latest = values[-1]

    if rule.condition == TriggerCondition.ABOVE:
        return latest if latest > rule.threshold else None
    elif rule.condition == TriggerCondition.BELOW:
        return latest if latest < rule.threshold else None
    elif rule.condition == TriggerCondition.EQUAL:
        return latest if abs(latest - rule.threshold) <= EQUAL_TOLERANCE else None
    elif rule.condition == TriggerCondition.CHANGE_PERCENT:
        change = percent_change(values[-2], latest)
        return change if abs(change) > rule.threshold else None
    return None


class TriggerEngine:
    def __init__(
        self,
        store: SampleStore,
        history: Optional[FireHistory] = None,
        action_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._rules: Dict[str, TriggerRule] = {}
        self._history = history if history is not None else FireHistory()
        self._action_timeout = action_timeout
        self._clock = clock
        self._stats = {
            "evaluations": 0,
            "fires": 0,
            "suppressed": 0,
            "skipped_insufficient_data": 0,
            "action_failures": 0,
            "start_time": clock()
        }

    @property
    def history(self) -> FireHistory:
        return self._history

    def register(self, rule: TriggerRule) -> TriggerRule:
        self._validate(rule)
        self._rules[rule.name] = rule
        logger.info(
            "Registered trigger %s: %s %s %s",
            rule.name, rule.metric_name, rule.condition.value, rule.threshold
        )
        return rule

    def remove(self, name: str) -> TriggerRule:
        rule = self.get(name)
        del self._rules[name]
        return rule

    def get(self, name: str) -> TriggerRule:
        rule = self._rules.get(name)
        if rule is None:
            raise NotFoundError("Trigger", name)
        return rule

    def rules(self) -> List[TriggerRule]:
        return list(self._rules.values())

    def enable(self, name: str) -> TriggerRule:
        rule = self.get(name)
        rule.enabled = True
        return rule

    def disable(self, name: str) -> TriggerRule:
        rule = self.get(name)
        rule.enabled = False
        return rule

    def rule_state(self, name: str, now: Optional[datetime] = None) -> RuleState:
        return self.get(name).state(now or self._clock())

    async def evaluate(self, now: Optional[datetime] = None) -> List[FireEvent]:
        """
        One evaluation pass over every rule, in registration order.

        A failing or hanging action is recorded on its event and
        never stops the remaining rules.
        """
        now = now or self._clock()
        fired = []
        self._stats["evaluations"] += 1

        for rule in list(self._rules.values()):
            if not rule.enabled:
                continue

            if rule.in_cooldown(now):
                self._stats["suppressed"] += 1
                continue

            samples = self._store.recent(rule.metric_name, rule.required_samples)
            if len(samples) < rule.required_samples:
                self._stats["skipped_insufficient_data"] += 1
                continue

            observed = condition_holds(rule, [s.value for s in samples])
            if observed is None:
                continue

            event = await self._fire(rule, observed, now)
            fired.append(event)

        return fired

    async def _fire(self, rule: TriggerRule, observed: float, now: datetime) -> FireEvent:
        event = FireEvent.from_rule(rule, observed, now)

        # Claimed before the action runs so an overlapping tick sees the cooldown
        rule.last_fired_at = now
        rule.fire_count += 1
        self._stats["fires"] += 1

        if rule.action is not None:
            event = await self._run_action(rule, event)

        self._history.append(event)

        logger.info("Trigger fired: %s", event.message, extra={"trigger": rule.name, "success": event.success})
        return event

    async def _run_action(self, rule: TriggerRule, event: FireEvent) -> FireEvent:
        task = asyncio.ensure_future(rule.action.execute(event))
        try:
            result = await asyncio.wait_for(task, timeout=self._action_timeout)
        except asyncio.TimeoutError:
            self._stats["action_failures"] += 1
            logger.error("Action %s for %s timed out after %.1fs", rule.action.name, rule.name, self._action_timeout)
            return replace(event, success=False, error=str(ActionTimeout(self._action_timeout)))
        except Exception as e:
            self._stats["action_failures"] += 1
            logger.error("Action %s for %s failed: %s", rule.action.name, rule.name, e, exc_info=True)
            return replace(event, success=False, error=str(e) or type(e).__name__)

        return replace(event, action_result=result, success=True)

    def get_history(self, since: Optional[datetime] = None) -> List[FireEvent]:
        return self._history.since(since)

    def clear_history(self) -> None:
        self._history.clear()

    def reset_cooldowns(self) -> None:
        for rule in self._rules.values():
            rule.last_fired_at = None

    def stats(self) -> Dict[str, Any]:
        uptime = (self._clock() - self._stats["start_time"]).total_seconds()
        return {
            **{k: v for k, v in self._stats.items() if k != "start_time"},
            "uptime_seconds": round(uptime, 2),
            "rules_count": len(self._rules),
            "enabled_rules": sum(1 for r in self._rules.values() if r.enabled),
            "history_size": len(self._history),
            "history_evicted": self._history.evicted,
        }

    def _validate(self, rule: TriggerRule) -> None:
        if not rule.name:
            raise ConfigurationError("Trigger name is required")
        if rule.name in self._rules:
            raise ConfigurationError(f"Duplicate trigger name: {rule.name}")
        if not rule.metric_name:
            raise ConfigurationError(f"Trigger {rule.name}: metric_name is required")
        if not isinstance(rule.condition, TriggerCondition):
            raise ConfigurationError(f"Trigger {rule.name}: invalid condition {rule.condition!r}")
        if isinstance(rule.threshold, bool) or not isinstance(rule.threshold, (int, float)):
            raise ConfigurationError(f"Trigger {rule.name}: threshold must be a number")
        if not math.isfinite(rule.threshold):
            raise ConfigurationError(f"Trigger {rule.name}: threshold must be finite")
        if isinstance(rule.lookback_window, bool) or not isinstance(rule.lookback_window, int) \
                or rule.lookback_window < 1:
            raise ConfigurationError(f"Trigger {rule.name}: lookback_window must be an int >= 1")
        if not isinstance(rule.cooldown_period, timedelta) or rule.cooldown_period < timedelta(0):
            raise ConfigurationError(f"Trigger {rule.name}: cooldown_period must be a non-negative timedelta")
        if rule.action is not None and not isinstance(rule.action, Action):
            raise ConfigurationError(f"Trigger {rule.name}: action must implement Action")
