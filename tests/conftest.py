from datetime import date

import pytest
from fastapi.testclient import TestClient

import main
from actions import ActivityActions
from config import GamificationConfig
from gamification import PointsAccumulator
from profiles import ProfileReconciler

from fakes import (
    FakeActivityLog, FakeAIClient, FakeGoalStore, FakeInsightStore,
    FakeLedger, FakePreferenceStore, FakeProfileStore
)

TODAY = date(2026, 3, 15)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def config():
    return GamificationConfig()


@pytest.fixture
def activity_log():
    return FakeActivityLog()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def profiles():
    return FakeProfileStore()


@pytest.fixture
def preferences():
    return FakePreferenceStore()


@pytest.fixture
def goal_store():
    return FakeGoalStore()


@pytest.fixture
def insight_store():
    return FakeInsightStore()


@pytest.fixture
def ai():
    return FakeAIClient(configured=False)


@pytest.fixture
def points(activity_log, ledger, config):
    return PointsAccumulator(activity_log, ledger, config=config)


@pytest.fixture
def reconciler(points, profiles, config):
    return ProfileReconciler(points, profiles, config)


@pytest.fixture
def actions(activity_log, ledger, profiles, reconciler, preferences, config):
    return ActivityActions(activity_log, ledger, profiles, reconciler, preferences, config)


@pytest.fixture
def client(activity_log, ledger, profiles, preferences, goal_store, insight_store, ai):
    """TestClient without the lifespan, so no database connection is made."""
    overrides = {
        main.get_activity_log: lambda: activity_log,
        main.get_points_ledger: lambda: ledger,
        main.get_profile_store: lambda: profiles,
        main.get_preference_store: lambda: preferences,
        main.get_goal_store: lambda: goal_store,
        main.get_insight_store: lambda: insight_store,
        main.get_ai: lambda: ai,
    }
    main.app.dependency_overrides.update(overrides)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
