"""
Tests for trigger rule evaluation, cooldown and action isolation.
"""

import asyncio
from datetime import timedelta

import pytest

from releasewatch.alerts import (
    TriggerEngine,
    TriggerRule,
    TriggerCondition,
    RuleState,
    ActionResult,
    CallableAction,
    LogAction,
)
from releasewatch.exceptions import ConfigurationError, NotFoundError

from .conftest import T0


def _record(store, metric, values, start=T0 - timedelta(minutes=10)):
    for i, v in enumerate(values):
        store.record(metric, v, start + timedelta(seconds=i))


def _rule(**overrides):
    fields = dict(
        name="error-spike",
        metric_name="error_rate",
        condition=TriggerCondition.ABOVE,
        threshold=0.05,
        lookback_window=1,
        cooldown_period=timedelta(minutes=5),
    )
    fields.update(overrides)
    return TriggerRule(**fields)


class TestConditions:
    """Each condition against the latest lookback values."""

    @pytest.mark.asyncio
    async def test_above_fires_once_then_cooldown(self, store, engine, clock):
        _record(store, "error_rate", [0.01, 0.01, 0.08])
        engine.register(_rule())

        fired = await engine.evaluate()
        assert len(fired) == 1
        assert fired[0].current_value == 0.08
        assert fired[0].success is True
        assert engine.rule_state("error-spike") == RuleState.COOLDOWN

        store.record("error_rate", 0.09, clock.now)
        clock.advance(minutes=1)
        assert await engine.evaluate() == []
        assert engine.stats()["suppressed"] == 1
        assert len(engine.get_history()) == 1

        clock.advance(minutes=5)
        fired = await engine.evaluate()
        assert len(fired) == 1
        assert fired[0].current_value == 0.09
        assert engine.get("error-spike").fire_count == 2

    @pytest.mark.asyncio
    async def test_below(self, store, engine):
        _record(store, "conversion_rate", [0.12, 0.03])
        engine.register(_rule(metric_name="conversion_rate", condition=TriggerCondition.BELOW, threshold=0.05))

        fired = await engine.evaluate()
        assert [e.current_value for e in fired] == [0.03]

    @pytest.mark.asyncio
    async def test_equal_uses_tolerance(self, store, engine):
        _record(store, "queue_depth", [10.0005])
        engine.register(_rule(metric_name="queue_depth", condition=TriggerCondition.EQUAL, threshold=10))

        assert len(await engine.evaluate()) == 1

    @pytest.mark.asyncio
    async def test_equal_outside_tolerance(self, store, engine):
        _record(store, "queue_depth", [10.01])
        engine.register(_rule(metric_name="queue_depth", condition=TriggerCondition.EQUAL, threshold=10))

        assert await engine.evaluate() == []

    @pytest.mark.asyncio
    async def test_change_percent_reports_signed_change(self, store, engine):
        _record(store, "dau", [1000, 700])
        engine.register(_rule(metric_name="dau", condition=TriggerCondition.CHANGE_PERCENT, threshold=20))

        fired = await engine.evaluate()
        assert len(fired) == 1
        assert fired[0].current_value == pytest.approx(-30.0)
        assert "changed" in fired[0].message

    @pytest.mark.asyncio
    async def test_change_percent_below_threshold(self, store, engine):
        _record(store, "dau", [1000, 950])
        engine.register(_rule(metric_name="dau", condition=TriggerCondition.CHANGE_PERCENT, threshold=20))

        assert await engine.evaluate() == []

    @pytest.mark.asyncio
    async def test_change_percent_needs_two_samples(self, store, engine):
        _record(store, "dau", [1000])
        engine.register(_rule(metric_name="dau", condition=TriggerCondition.CHANGE_PERCENT, threshold=1))

        assert await engine.evaluate() == []
        assert engine.stats()["skipped_insufficient_data"] == 1

    @pytest.mark.asyncio
    async def test_insufficient_lookback_is_skipped(self, store, engine):
        _record(store, "error_rate", [0.5, 0.5])
        engine.register(_rule(lookback_window=3))

        assert await engine.evaluate() == []
        assert engine.stats()["skipped_insufficient_data"] == 1

    @pytest.mark.asyncio
    async def test_no_data_does_not_fire(self, engine):
        engine.register(_rule())
        assert await engine.evaluate() == []


class TestLifecycle:
    """Enable, disable, remove and cooldown reset."""

    @pytest.mark.asyncio
    async def test_disabled_rule_never_fires(self, store, engine):
        _record(store, "error_rate", [0.5])
        engine.register(_rule(enabled=False))

        assert await engine.evaluate() == []
        assert engine.rule_state("error-spike") == RuleState.DISABLED

        engine.enable("error-spike")
        assert len(await engine.evaluate()) == 1

    @pytest.mark.asyncio
    async def test_disable_stops_firing(self, store, engine, clock):
        _record(store, "error_rate", [0.5])
        engine.register(_rule(cooldown_period=timedelta(0)))

        assert len(await engine.evaluate()) == 1
        engine.disable("error-spike")
        clock.advance(seconds=1)
        assert await engine.evaluate() == []

    @pytest.mark.asyncio
    async def test_reset_cooldowns(self, store, engine):
        _record(store, "error_rate", [0.5])
        engine.register(_rule())

        assert len(await engine.evaluate()) == 1
        assert await engine.evaluate() == []
        engine.reset_cooldowns()
        assert len(await engine.evaluate()) == 1

    def test_remove_and_get(self, engine):
        engine.register(_rule())
        assert engine.get("error-spike").metric_name == "error_rate"

        engine.remove("error-spike")
        with pytest.raises(NotFoundError):
            engine.get("error-spike")
        with pytest.raises(NotFoundError):
            engine.remove("error-spike")

    @pytest.mark.asyncio
    async def test_history_since_is_inclusive(self, store, engine, clock):
        _record(store, "error_rate", [0.5])
        engine.register(_rule(cooldown_period=timedelta(0)))

        await engine.evaluate()
        first = clock.now
        clock.advance(minutes=1)
        await engine.evaluate()

        assert len(engine.get_history()) == 2
        assert len(engine.get_history(since=first)) == 2
        assert len(engine.get_history(since=first + timedelta(seconds=1))) == 1

        engine.clear_history()
        assert engine.get_history() == []


class TestActions:
    """Action failures are captured on the event and isolated per rule."""

    @pytest.mark.asyncio
    async def test_action_result_attached(self, store, engine):
        _record(store, "error_rate", [0.5])
        engine.register(_rule(action=CallableAction(lambda event: {"paged": True}, name="pager")))

        fired = await engine.evaluate()
        assert fired[0].action_result == ActionResult("ok", {"paged": True})

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_other_rules(self, store, engine):
        _record(store, "error_rate", [0.5])

        def explode(event):
            raise RuntimeError("pager down")

        engine.register(_rule(name="first", action=CallableAction(explode)))
        engine.register(_rule(name="second", action=LogAction()))

        fired = await engine.evaluate()
        assert [e.trigger_name for e in fired] == ["first", "second"]
        assert fired[0].success is False
        assert fired[0].error == "pager down"
        assert fired[1].success is True
        assert engine.stats()["action_failures"] == 1

        # Failed actions still start the cooldown
        assert engine.rule_state("first") == RuleState.COOLDOWN

    @pytest.mark.asyncio
    async def test_hanging_action_times_out(self, store, clock):
        engine = TriggerEngine(store, action_timeout=0.05, clock=clock)
        _record(store, "error_rate", [0.5])

        async def hang(event):
            await asyncio.sleep(10)

        engine.register(_rule(action=CallableAction(hang)))

        fired = await engine.evaluate()
        assert fired[0].success is False
        assert fired[0].error == "timeout"
        assert len(engine.get_history()) == 1

    @pytest.mark.asyncio
    async def test_false_return_is_failure(self, store, engine):
        _record(store, "error_rate", [0.5])
        engine.register(_rule(action=CallableAction(lambda event: False, name="refuse")))

        fired = await engine.evaluate()
        assert fired[0].success is False
        assert "refuse" in fired[0].error


class TestValidation:
    """register() rejects malformed rules with ConfigurationError."""

    def test_duplicate_name(self, engine):
        engine.register(_rule())
        with pytest.raises(ConfigurationError):
            engine.register(_rule())

    @pytest.mark.parametrize("overrides", [
        {"name": ""},
        {"metric_name": ""},
        {"condition": "above"},
        {"threshold": "high"},
        {"threshold": True},
        {"threshold": float("nan")},
        {"lookback_window": 0},
        {"lookback_window": 1.5},
        {"cooldown_period": timedelta(seconds=-1)},
        {"cooldown_period": 300},
        {"action": "alert"},
    ])
    def test_invalid_rule(self, engine, overrides):
        with pytest.raises(ConfigurationError):
            engine.register(_rule(**overrides))
        assert engine.rules() == []


class TestOverlappingEvaluation:
    """Two passes running at once must respect a single cooldown."""

    @pytest.mark.asyncio
    async def test_concurrent_evaluate_fires_once(self, store, engine):
        calls = []

        async def slow_page(event):
            calls.append(event.trigger_name)
            await asyncio.sleep(0.05)

        _record(store, "error_rate", [0.08])
        engine.register(_rule(action=CallableAction(slow_page)))

        first, second = await asyncio.gather(engine.evaluate(), engine.evaluate())

        assert len(first) + len(second) == 1
        assert calls == ["error-spike"]
        assert len(engine.get_history()) == 1
        assert engine.stats()["suppressed"] == 1

    @pytest.mark.asyncio
    async def test_cooldown_visible_while_action_runs(self, store, engine):
        started = asyncio.Event()
        release = asyncio.Event()

        async def blocked(event):
            started.set()
            await release.wait()

        _record(store, "error_rate", [0.08])
        engine.register(_rule(action=CallableAction(blocked)))

        pending = asyncio.ensure_future(engine.evaluate())
        await started.wait()
        assert engine.rule_state("error-spike") == RuleState.COOLDOWN

        release.set()
        assert len(await pending) == 1

    @pytest.mark.asyncio
    async def test_async_callable_object_is_awaited(self, store, engine):
        class Pager:
            def __init__(self):
                self.paged = []

            async def __call__(self, event):
                self.paged.append(event.current_value)
                return {"paged": True}

        pager = Pager()
        _record(store, "error_rate", [0.08])
        engine.register(_rule(action=CallableAction(pager, name="pager")))

        fired = await engine.evaluate()

        assert pager.paged == [0.08]
        assert fired[0].action_result == ActionResult("ok", {"paged": True})
