"""
Shared pytest fixtures.

Time is driven by FakeClock so cooldowns and windows are
tested without sleeping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from releasewatch.alerts import TriggerEngine, FireHistory
from releasewatch.analytics import DeploymentImpactAnalyzer
from releasewatch.core import SampleStore, IngestionEngine
from releasewatch.services import AlertDispatcher


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink:
    """NotificationSink double that remembers what it was sent."""

    def __init__(self, ack: bool = True):
        self.ack = ack
        self.alerts = []

    def notify(self, alert):
        self.alerts.append(alert)
        return self.ack


class FakeDeploymentManager:
    """DeploymentManager double."""

    def __init__(self, response=None, error: Exception = None):
        self.response = response if response is not None else {"status": "ok", "version": "1.0.0"}
        self.error = error
        self.calls = []

    def rollback(self, deployment_id=None):
        self.calls.append(deployment_id)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> SampleStore:
    return SampleStore(max_samples=100)


@pytest.fixture
def engine(store, clock) -> TriggerEngine:
    return TriggerEngine(store, history=FireHistory(max_size=100), action_timeout=0.5, clock=clock)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def manager() -> FakeDeploymentManager:
    return FakeDeploymentManager()


@pytest.fixture
def dispatcher(clock, sink, manager) -> AlertDispatcher:
    ingestion = IngestionEngine(max_samples=100)
    triggers = TriggerEngine(ingestion.store, action_timeout=0.5, clock=clock)
    analyzer = DeploymentImpactAnalyzer(ingestion.store, ingestion.get_deployment)
    return AlertDispatcher(
        ingestion=ingestion,
        triggers=triggers,
        analyzer=analyzer,
        tick_interval=0.01,
        callback_timeout=0.5,
        notification_sink=sink,
        deployment_manager=manager,
        clock=clock,
    )
