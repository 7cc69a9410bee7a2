"""
Tests for the alert dispatcher: registration, fan-out and the loop.
"""

import asyncio
import threading
from datetime import timedelta

import pytest

from releasewatch.alerts import TriggerRuleSpec, RollbackAction
from releasewatch.config import Settings
from releasewatch.exceptions import ConfigurationError, NotFoundError
from releasewatch.services import AlertDispatcher, WebhookNotificationSink, HttpDeploymentManager

from .conftest import T0


ERROR_SPIKE = {
    "name": "error-spike",
    "metric_name": "error_rate",
    "condition": "above",
    "threshold": 0.05,
}


class TestRegisterTrigger:
    """Tests for AlertDispatcher.register_trigger()."""

    def test_from_dict(self, dispatcher):
        assert dispatcher.register_trigger(dict(ERROR_SPIKE, cooldown_seconds=60)) == "error-spike"

        rule = dispatcher.get_trigger("error-spike")
        assert rule.cooldown_period == timedelta(seconds=60)
        assert rule.action is None

    def test_from_spec_model_with_action(self, dispatcher):
        dispatcher.register_trigger(TriggerRuleSpec(**ERROR_SPIKE, action={"type": "rollback"}))
        assert isinstance(dispatcher.get_trigger("error-spike").action, RollbackAction)

    @pytest.mark.parametrize("spec", [
        dict(ERROR_SPIKE, condition="sideways"),
        dict(ERROR_SPIKE, severity="apocalyptic"),
        dict(ERROR_SPIKE, action={"type": "carrier_pigeon"}),
        {"name": "missing-fields"},
        dict(ERROR_SPIKE, threshold="lots"),
    ])
    def test_invalid_spec(self, dispatcher, spec):
        with pytest.raises(ConfigurationError):
            dispatcher.register_trigger(spec)

    def test_duplicate(self, dispatcher):
        dispatcher.register_trigger(ERROR_SPIKE)
        with pytest.raises(ConfigurationError):
            dispatcher.register_trigger(ERROR_SPIKE)

    def test_enable_disable_remove(self, dispatcher):
        dispatcher.register_trigger(ERROR_SPIKE)

        assert dispatcher.disable("error-spike").enabled is False
        assert dispatcher.enable("error-spike").enabled is True
        dispatcher.remove_trigger("error-spike")
        assert dispatcher.get_triggers() == []
        with pytest.raises(NotFoundError):
            dispatcher.enable("error-spike")


class TestTick:
    """One evaluation pass plus fan-out."""

    @pytest.mark.asyncio
    async def test_fires_and_fans_out(self, dispatcher, clock):
        seen = []
        dispatcher.on_alert(seen.append)
        dispatcher.register_trigger(ERROR_SPIKE)
        for v in [0.01, 0.01, 0.08]:
            dispatcher.record_sample("error_rate", v)
            clock.advance(seconds=1)

        events = await dispatcher.tick()

        assert len(events) == 1
        assert seen == events
        assert await dispatcher.get_event(timeout=0.1) == events[0]

    @pytest.mark.asyncio
    async def test_callback_failure_is_isolated(self, dispatcher):
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        async def async_seen(event):
            seen.append(event.trigger_name)

        dispatcher.on_alert(broken)
        dispatcher.on_alert(async_seen)
        dispatcher.register_trigger(ERROR_SPIKE)
        dispatcher.record_sample("error_rate", 0.5)

        await dispatcher.tick()

        assert seen == ["error-spike"]
        assert dispatcher.stats()["callback_failures"] == 1

    @pytest.mark.asyncio
    async def test_bound_callable_action(self, dispatcher):
        calls = []
        dispatcher.register_trigger(ERROR_SPIKE, action=lambda event: calls.append(event.current_value))
        dispatcher.record_sample("error_rate", 0.5)

        events = await dispatcher.tick()

        assert calls == [0.5]
        assert events[0].success is True

    @pytest.mark.asyncio
    async def test_rollback_reaches_manager(self, dispatcher, manager, clock):
        dispatcher.record_deployment({"id": "d1", "timestamp": clock.now.isoformat()})
        dispatcher.register_trigger(dict(ERROR_SPIKE, action={"type": "rollback"}))
        dispatcher.record_sample("error_rate", 0.5)

        events = await dispatcher.tick()

        assert manager.calls == ["d1"]
        assert events[0].action_result.status == "rolled_back"

    @pytest.mark.asyncio
    async def test_alert_action_reaches_sink(self, dispatcher, sink):
        dispatcher.register_trigger(dict(ERROR_SPIKE, action={"type": "alert"}))
        dispatcher.record_sample("error_rate", 0.5)

        await dispatcher.tick()

        assert len(sink.alerts) == 1
        assert sink.alerts[0]["metric_name"] == "error_rate"

    @pytest.mark.asyncio
    async def test_get_event_timeout(self, dispatcher):
        assert await dispatcher.get_event(timeout=0.01) is None


class TestDeployments:
    @pytest.mark.asyncio
    async def test_events_for_deployment(self, dispatcher, clock):
        dispatcher.record_deployment({"id": "d1", "timestamp": T0.isoformat(), "version": "2.0"})
        dispatcher.register_trigger(ERROR_SPIKE)
        clock.advance(minutes=5)
        dispatcher.record_sample("error_rate", 0.5)
        await dispatcher.tick()

        events = dispatcher.events_for_deployment("d1")
        assert [e.trigger_name for e in events] == ["error-spike"]

        with pytest.raises(NotFoundError):
            dispatcher.events_for_deployment("d2")

    def test_repeated_notification_is_ignored(self, dispatcher):
        first = dispatcher.record_deployment({"id": "d1", "version": "1"})
        second = dispatcher.record_deployment({"id": "d1", "version": "2"})

        assert second is first
        assert dispatcher.get_deployment("d1").version == "1"

    def test_analyze_deployment(self, dispatcher):
        dispatcher.record_deployment({"id": "d1", "timestamp": T0.isoformat()})
        dispatcher.record_sample("error_rate", 0.01, T0 - timedelta(minutes=5))
        dispatcher.record_sample("error_rate", 0.08, T0 + timedelta(minutes=5))

        report = dispatcher.analyze_deployment("d1")
        assert report.risk_level.value == "medium"


class TestLoop:
    """start(), stop() and cross-thread ingestion."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, dispatcher):
        dispatcher.start()
        await asyncio.sleep(0.05)
        assert dispatcher.is_running is True

        await dispatcher.stop()

        assert dispatcher.is_running is False
        assert dispatcher.stats()["ticks"] >= 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, dispatcher):
        await dispatcher.stop()
        assert dispatcher.is_running is False

    @pytest.mark.asyncio
    async def test_loop_fires_rules(self, dispatcher):
        seen = []
        dispatcher.on_alert(seen.append)
        dispatcher.register_trigger(ERROR_SPIKE)
        dispatcher.record_sample("error_rate", 0.5)

        dispatcher.start()
        await asyncio.sleep(0.05)
        await dispatcher.stop()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_submit_sample_from_thread(self, dispatcher):
        dispatcher.start()

        thread = threading.Thread(target=dispatcher.submit_sample, args=("dau", 1200.0))
        thread.start()
        thread.join()
        await asyncio.sleep(0.02)
        await dispatcher.stop()

        assert dispatcher.ingestion.store.latest("dau").value == 1200.0

    def test_submit_sample_without_loop(self, dispatcher):
        dispatcher.submit_sample("dau", 1200.0)
        assert dispatcher.ingestion.store.count("dau") == 1

    def test_compare_variants(self, dispatcher):
        result = dispatcher.compare_variants(120, 1000, 150, 1000)
        assert result.lift_percent == pytest.approx(25.0)


class TestFromSettings:
    def test_wires_configured_collaborators(self):
        settings = Settings(
            max_samples_per_metric=10,
            retain_samples_per_metric=4,
            notification_webhook_url="http://hooks.local/alerts",
            deployment_manager_url="http://deployer.local",
        )

        dispatcher = AlertDispatcher.from_settings(settings)

        assert dispatcher.ingestion.store.max_samples == 10
        assert dispatcher.ingestion.store.retain_samples == 4
        assert isinstance(dispatcher._action_context.notification_sink, WebhookNotificationSink)
        assert isinstance(dispatcher._action_context.deployment_manager, HttpDeploymentManager)


class TestManualTickDuringLoop:
    """A manual tick racing the running loop must not double-fire a rule."""

    @pytest.mark.asyncio
    async def test_manual_tick_respects_cooldown(self, dispatcher):
        calls = []

        async def slow_rollback(event):
            calls.append(event.trigger_name)
            await asyncio.sleep(0.05)

        dispatcher.register_trigger(ERROR_SPIKE, action=slow_rollback)
        dispatcher.record_sample("error_rate", 0.08)

        dispatcher.start()
        await asyncio.sleep(0.01)
        manual = await dispatcher.tick()
        await asyncio.sleep(0.1)
        await dispatcher.stop()

        assert manual == []
        assert calls == ["error-spike"]
        assert len(dispatcher.get_history()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_manual_ticks(self, dispatcher):
        seen = []
        dispatcher.on_alert(seen.append)

        async def slow(event):
            await asyncio.sleep(0.05)

        dispatcher.register_trigger(ERROR_SPIKE, action=slow)
        dispatcher.record_sample("error_rate", 0.08)

        results = await asyncio.gather(dispatcher.tick(), dispatcher.tick(), dispatcher.tick())

        assert sum(len(r) for r in results) == 1
        assert len(seen) == 1
