"""
Real-Time Alert Dispatcher
Drives the processing loop: ingestion in, periodic trigger evaluation,
fan-out of every FireEvent to registered alert callbacks.

Usage:
    from releasewatch.services import get_dispatcher

    dispatcher = get_dispatcher()
    dispatcher.start()                      # inside a running event loop
    dispatcher.record_sample("error_rate", 0.02)
    dispatcher.on_alert(lambda event: print(event.message))
    ...
    await dispatcher.stop()

Ingestion and ticks share one event loop, so a tick never sees a
partially written sample. Other threads must use submit_sample().
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from ..alerts import (
    TriggerEngine,
    TriggerRule,
    TriggerRuleSpec,
    TriggerCondition,
    AlertSeverity,
    FireEvent,
    FireHistory,
    Action,
    ActionContext,
    CallableAction,
    build_action,
)
from ..analytics import comparator, DeploymentImpactAnalyzer, ImpactReport, VariantComparison
from ..config import Settings, get_settings
from ..core import IngestionEngine, Deployment, DataSource, to_deployment, utcnow
from ..exceptions import ConfigurationError
from .collaborators import (
    DeploymentManager,
    NotificationSink,
    HttpDeploymentManager,
    WebhookNotificationSink,
    LogNotificationSink,
)

logger = logging.getLogger(__name__)

AlertCallback = Callable[[FireEvent], Any]


class AlertDispatcher:
    """
    Owns the ingestion engine, trigger engine and impact analyzer,
    and exposes the collaborator-facing operations.
    """

    def __init__(
        self,
        ingestion: Optional[IngestionEngine] = None,
        triggers: Optional[TriggerEngine] = None,
        analyzer: Optional[DeploymentImpactAnalyzer] = None,
        tick_interval: float = 1.0,
        callback_timeout: float = 5.0,
        notification_sink: Optional[NotificationSink] = None,
        deployment_manager: Optional[DeploymentManager] = None,
        event_queue_size: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._clock = clock
        self._ingestion = ingestion or IngestionEngine()
        self._triggers = triggers or TriggerEngine(self._ingestion.store, clock=clock)
        self._analyzer = analyzer or DeploymentImpactAnalyzer(
            self._ingestion.store, self._ingestion.get_deployment
        )
        self.tick_interval = tick_interval
        self.callback_timeout = callback_timeout

        self._action_context = ActionContext(
            notification_sink=notification_sink or LogNotificationSink(),
            deployment_manager=deployment_manager,
            analyzer=self._analyzer,
            latest_deployment=self._ingestion.latest_deployment,
        )

        self._callbacks: List[AlertCallback] = []
        self._event_queue: asyncio.Queue = asyncio.Queue(maxsize=event_queue_size)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        self._stats = {
            "ticks": 0,
            "tick_errors": 0,
            "callback_failures": 0,
            "events_dropped": 0,
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AlertDispatcher":
        settings = settings or get_settings()

        ingestion = IngestionEngine(
            max_samples=settings.max_samples_per_metric,
            retain_samples=settings.retain_samples_per_metric,
        )
        triggers = TriggerEngine(
            ingestion.store,
            history=FireHistory(max_size=settings.history_max_size),
            action_timeout=settings.action_timeout_seconds,
        )
        analyzer = DeploymentImpactAnalyzer(
            ingestion.store,
            ingestion.get_deployment,
            before_window=timedelta(minutes=settings.before_window_minutes),
            after_window=timedelta(minutes=settings.after_window_minutes),
            after_offset=timedelta(seconds=settings.after_offset_seconds),
            materiality_percent=settings.materiality_percent,
        )

        sink = None
        if settings.notification_webhook_url:
            sink = WebhookNotificationSink(settings.notification_webhook_url, settings.http_timeout_seconds)
        manager = None
        if settings.deployment_manager_url:
            manager = HttpDeploymentManager(settings.deployment_manager_url, settings.http_timeout_seconds)

        return cls(
            ingestion=ingestion,
            triggers=triggers,
            analyzer=analyzer,
            tick_interval=settings.tick_interval_seconds,
            callback_timeout=settings.action_timeout_seconds,
            notification_sink=sink,
            deployment_manager=manager,
            event_queue_size=settings.event_queue_size,
        )

    # =========================================================================
    # Components
    # =========================================================================

    @property
    def ingestion(self) -> IngestionEngine:
        return self._ingestion

    @property
    def triggers(self) -> TriggerEngine:
        return self._triggers

    @property
    def analyzer(self) -> DeploymentImpactAnalyzer:
        return self._analyzer

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Ingestion
    # =========================================================================

    def record_sample(
        self,
        metric_name: str,
        value: float,
        timestamp: Optional[datetime] = None,
        deployment_id: Optional[str] = None,
        source: DataSource = DataSource.API,
    ) -> bool:
        """Append a sample; returns False if it was rejected. Never raises."""
        return self._ingestion.ingest(
            metric_name, value, timestamp or self._clock(), deployment_id, source
        )

    def submit_sample(self, metric_name: str, value: float, timestamp: Optional[datetime] = None,
                      deployment_id: Optional[str] = None) -> None:
        """Thread-safe ingestion: hands the sample to the dispatcher's loop."""
        timestamp = timestamp or self._clock()
        if self._loop is None or not self._loop.is_running():
            self.record_sample(metric_name, value, timestamp, deployment_id)
            return
        self._loop.call_soon_threadsafe(
            self.record_sample, metric_name, value, timestamp, deployment_id, DataSource.FEED
        )

    def record_deployment(self, deployment: Union[Deployment, Dict[str, Any]]) -> Deployment:
        if isinstance(deployment, dict):
            deployment = to_deployment(deployment)
        return self._ingestion.record_deployment(deployment)

    def get_deployment(self, deployment_id: str) -> Deployment:
        return self._ingestion.get_deployment(deployment_id)

    # =========================================================================
    # Trigger management
    # =========================================================================

    def register_trigger(
        self,
        rule_spec: Union[TriggerRuleSpec, TriggerRule, Dict[str, Any]],
        action: Optional[Union[Action, AlertCallback]] = None,
    ) -> str:
        """
        Register a rule and return its handle (the rule name).

        `action` binds a Python action directly and overrides any
        configured one.

        Raises:
            ConfigurationError: invalid or duplicate rule
        """
        if isinstance(rule_spec, TriggerRule):
            rule = rule_spec
        else:
            rule = self._rule_from_spec(rule_spec)

        if action is not None:
            rule.action = action if isinstance(action, Action) else CallableAction(action)

        self._triggers.register(rule)
        return rule.name

    def enable(self, name: str) -> TriggerRule:
        return self._triggers.enable(name)

    def disable(self, name: str) -> TriggerRule:
        return self._triggers.disable(name)

    def remove_trigger(self, name: str) -> TriggerRule:
        return self._triggers.remove(name)

    def get_trigger(self, name: str) -> TriggerRule:
        return self._triggers.get(name)

    def get_triggers(self) -> List[TriggerRule]:
        return self._triggers.rules()

    def _rule_from_spec(self, spec: Union[TriggerRuleSpec, Dict[str, Any]]) -> TriggerRule:
        if isinstance(spec, dict):
            try:
                spec = TriggerRuleSpec(**spec)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid trigger spec: {e}") from e

        try:
            condition = TriggerCondition(spec.condition)
        except ValueError:
            raise ConfigurationError(
                f"Invalid condition: {spec.condition}. Use: above, below, equal, change_percent"
            )
        try:
            severity = AlertSeverity(spec.severity)
        except ValueError:
            raise ConfigurationError(f"Invalid severity: {spec.severity}. Use: info, warning, critical")

        return TriggerRule(
            name=spec.name,
            metric_name=spec.metric_name,
            condition=condition,
            threshold=spec.threshold,
            lookback_window=spec.lookback_window,
            cooldown_period=timedelta(seconds=spec.cooldown_seconds),
            enabled=spec.enabled,
            severity=severity,
            description=spec.description,
            action=build_action(spec.action, self._action_context),
        )

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze_deployment(self, deployment_id: str) -> ImpactReport:
        return self._analyzer.analyze(deployment_id)

    def compare_variants(self, success_a: int, total_a: int, success_b: int, total_b: int) -> VariantComparison:
        return comparator.compare_variants(success_a, total_a, success_b, total_b)

    def get_history(self, since: Optional[datetime] = None) -> List[FireEvent]:
        return self._triggers.get_history(since)

    def events_for_deployment(self, deployment_id: str) -> List[FireEvent]:
        """FireEvents inside the deployment's analysis window"""
        deployment = self._ingestion.get_deployment(deployment_id)
        t0 = deployment.timestamp
        return self._triggers.history.between(
            t0 - self._analyzer.before_window, t0 + self._analyzer.after_window
        )

    # =========================================================================
    # Alert fan-out
    # =========================================================================

    def on_alert(self, callback: AlertCallback) -> None:
        self._callbacks.append(callback)

    async def get_event(self, timeout: Optional[float] = None) -> Optional[FireEvent]:
        try:
            if timeout:
                return await asyncio.wait_for(self._event_queue.get(), timeout)
            return await self._event_queue.get()
        except asyncio.TimeoutError:
            return None

    async def _dispatch(self, event: FireEvent) -> None:
        try:
            self._event_queue.put_nowait(event)
        except asyncio.QueueFull:
            self._stats["events_dropped"] += 1

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, timeout=self.callback_timeout)
            except Exception:
                self._stats["callback_failures"] += 1
                logger.exception("Alert callback %r failed for %s", callback, event.trigger_name)

    # =========================================================================
    # Loop
    # =========================================================================

    async def tick(self, now: Optional[datetime] = None) -> List[FireEvent]:
        """One evaluation pass plus fan-out. Usable without the loop."""
        events = await self._triggers.evaluate(now or self._clock())
        self._stats["ticks"] += 1
        for event in events:
            await self._dispatch(event)
        return events

    async def run(self) -> None:
        """Tick every tick_interval seconds until stop() is called"""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        self._running = True
        logger.info("Dispatcher started (tick every %.2fs)", self.tick_interval)

        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                except Exception:
                    self._stats["tick_errors"] += 1
                    logger.exception("Tick failed")

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Dispatcher stopped after %d ticks", self._stats["ticks"])

    def start(self) -> asyncio.Task:
        """Schedule run() on the current event loop"""
        if self._task is not None and not self._task.done():
            return self._task
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._task = self._loop.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Let the in-flight tick finish, then stop ticking. State is kept."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None

    def stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "is_running": self._running,
            "tick_interval": self.tick_interval,
            "callbacks": len(self._callbacks),
            "queue_size": self._event_queue.qsize(),
            "triggers": self._triggers.stats(),
            "ingestion": self._ingestion.stats(),
        }


# Singleton
_dispatcher: Optional[AlertDispatcher] = None


def get_dispatcher() -> AlertDispatcher:
    """Get or create the dispatcher singleton from settings"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = AlertDispatcher.from_settings()
    return _dispatcher
