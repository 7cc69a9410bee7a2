"""
Tests for trigger actions and action configuration.
"""

from datetime import timedelta

import pytest

from releasewatch.alerts import (
    FireEvent,
    AlertAction,
    RollbackAction,
    ImpactAnalysisAction,
    LogAction,
    CallableAction,
    ActionContext,
    build_action,
)
from releasewatch.analytics import DeploymentImpactAnalyzer, RiskLevel
from releasewatch.core import IngestionEngine, Deployment
from releasewatch.exceptions import ActionFailure, ConfigurationError

from .conftest import T0, RecordingSink, FakeDeploymentManager


def _event():
    return FireEvent(
        trigger_name="error-spike",
        metric_name="error_rate",
        condition="above",
        current_value=0.08,
        threshold=0.05,
        timestamp=T0,
    )


@pytest.fixture
def ingestion():
    engine = IngestionEngine()
    engine.record_deployment(Deployment(id="d1", timestamp=T0))
    return engine


@pytest.fixture
def analyzer(ingestion):
    return DeploymentImpactAnalyzer(ingestion.store, ingestion.get_deployment)


class TestAlertAction:
    @pytest.mark.asyncio
    async def test_sends_event_payload(self):
        sink = RecordingSink()
        result = await AlertAction(sink).execute(_event())

        assert result.status == "notified"
        assert sink.alerts[0]["trigger_name"] == "error-spike"
        assert "message" in sink.alerts[0]

    @pytest.mark.asyncio
    async def test_missing_ack_is_failure(self):
        with pytest.raises(ActionFailure):
            await AlertAction(RecordingSink(ack=False)).execute(_event())


class TestRollbackAction:
    """Tests for RollbackAction, with and without risk gating."""

    @pytest.mark.asyncio
    async def test_rolls_back_latest_deployment(self, ingestion):
        manager = FakeDeploymentManager()
        action = RollbackAction(manager, ingestion.latest_deployment)

        result = await action.execute(_event())

        assert manager.calls == ["d1"]
        assert result.status == "rolled_back"
        assert result.detail["deployment_id"] == "d1"
        assert result.detail["version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_failed_status_raises(self, ingestion):
        manager = FakeDeploymentManager(response={"status": "failed"})
        action = RollbackAction(manager, ingestion.latest_deployment)

        with pytest.raises(ActionFailure):
            await action.execute(_event())

    @pytest.mark.asyncio
    async def test_manager_error_propagates(self, ingestion):
        manager = FakeDeploymentManager(error=ActionFailure("unreachable"))
        action = RollbackAction(manager, ingestion.latest_deployment)

        with pytest.raises(ActionFailure):
            await action.execute(_event())

    @pytest.mark.asyncio
    async def test_gated_rollback_skips_low_risk(self, ingestion, analyzer):
        manager = FakeDeploymentManager()
        action = RollbackAction(manager, ingestion.latest_deployment, analyzer, min_risk=RiskLevel.HIGH)

        result = await action.execute(_event())

        assert result.status == "skipped"
        assert manager.calls == []

    @pytest.mark.asyncio
    async def test_gated_rollback_runs_at_threshold(self, ingestion, analyzer):
        ingestion.ingest("error_rate", 0.01, T0 - timedelta(minutes=10))
        ingestion.ingest("error_rate", 0.08, T0 + timedelta(minutes=10))
        manager = FakeDeploymentManager()
        action = RollbackAction(manager, ingestion.latest_deployment, analyzer, min_risk=RiskLevel.MEDIUM)

        result = await action.execute(_event())

        assert result.status == "rolled_back"
        assert manager.calls == ["d1"]

    def test_gating_requires_analyzer(self, ingestion):
        with pytest.raises(ConfigurationError):
            RollbackAction(FakeDeploymentManager(), ingestion.latest_deployment, min_risk=RiskLevel.HIGH)


class TestImpactAnalysisAction:
    @pytest.mark.asyncio
    async def test_attaches_summary(self, ingestion, analyzer):
        result = await ImpactAnalysisAction(analyzer, ingestion.latest_deployment).execute(_event())

        assert result.status == "analyzed"
        assert result.detail["deployment_id"] == "d1"
        assert result.detail["risk_level"] == "low"

    @pytest.mark.asyncio
    async def test_skips_without_deployment(self, analyzer):
        result = await ImpactAnalysisAction(analyzer, lambda: None).execute(_event())
        assert result.status == "skipped"


class TestCallableAction:
    @pytest.mark.asyncio
    async def test_async_callable(self):
        async def handler(event):
            return {"seen": event.trigger_name}

        result = await CallableAction(handler).execute(_event())
        assert result.detail == {"seen": "error-spike"}
        assert CallableAction(handler).name == "handler"

    @pytest.mark.asyncio
    async def test_sync_callable_error_propagates(self):
        def handler(event):
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await CallableAction(handler).execute(_event())


class TestBuildAction:
    """build_action() selects the action by explicit type."""

    @pytest.fixture
    def context(self, ingestion, analyzer):
        return ActionContext(
            notification_sink=RecordingSink(),
            deployment_manager=FakeDeploymentManager(),
            analyzer=analyzer,
            latest_deployment=ingestion.latest_deployment,
        )

    def test_no_config(self, context):
        assert build_action(None, context) is None
        assert build_action({}, context) is None

    @pytest.mark.parametrize("config, cls", [
        ({"type": "log"}, LogAction),
        ({"type": "alert"}, AlertAction),
        ({"type": "impact_analysis"}, ImpactAnalysisAction),
        ({"type": "rollback"}, RollbackAction),
    ])
    def test_known_types(self, context, config, cls):
        assert isinstance(build_action(config, context), cls)

    def test_rollback_min_risk(self, context):
        action = build_action({"type": "rollback", "min_risk": "high"}, context)
        assert action.min_risk == RiskLevel.HIGH

    def test_invalid_min_risk(self, context):
        with pytest.raises(ConfigurationError):
            build_action({"type": "rollback", "min_risk": "extreme"}, context)

    def test_unknown_type(self, context):
        with pytest.raises(ConfigurationError):
            build_action({"type": "page_everyone"}, context)

    def test_missing_collaborator(self):
        with pytest.raises(ConfigurationError):
            build_action({"type": "rollback"}, ActionContext())


class TestAwaitableResults:
    """Callables that hand back coroutines are awaited, not wrapped."""

    @pytest.mark.asyncio
    async def test_async_call_method(self):
        class Notifier:
            def __init__(self):
                self.sent = []

            async def __call__(self, event):
                self.sent.append(event.trigger_name)

        notifier = Notifier()
        result = await CallableAction(notifier, name="notifier").execute(_event())

        assert notifier.sent == ["error-spike"]
        assert result.status == "ok"
        assert result.detail == {}

    @pytest.mark.asyncio
    async def test_lambda_returning_coroutine(self):
        async def refuse(event):
            return False

        with pytest.raises(ActionFailure):
            await CallableAction(lambda event: refuse(event), name="refuse").execute(_event())
