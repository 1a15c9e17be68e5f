"""
Shared fixtures: an in-memory SQLite store per test, the repository and
mediator wired over it, and a signed-in analyst.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from intel_console.contracts import AlertDto, AlertSeverity, AlertStatus, CreateAlertCommand
from intel_console.db.repo import AlertRepository
from intel_console.db.session import init_db, make_engine, make_session_factory
from intel_console.mediator import build_mediator
from intel_console.user_session import UserSession


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def repository(session_factory):
    return AlertRepository(session_factory)


@pytest.fixture
def mediator(repository):
    return build_mediator(repository)


@pytest.fixture
def analyst():
    return UserSession("analyst1", display_name="Analyst One")


@pytest.fixture
def create_alert(mediator):
    async def _create(
        alert_name: str = "Unusual login",
        description: str = "Login from an unrecognised network",
        severity: AlertSeverity = AlertSeverity.warning,
        source: str = "SIEM",
    ) -> str:
        result = await mediator.send(
            CreateAlertCommand(
                alert_name=alert_name,
                description=description,
                severity=severity,
                source=source,
            )
        )
        assert not result.is_error, result.errors
        return result.value

    return _create


def make_dto(**overrides) -> AlertDto:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    values = {
        "id": "a1",
        "alert_name": "Port scan",
        "description": "Sequential port connection attempts",
        "severity": AlertSeverity.warning,
        "status": AlertStatus.active,
        "source": "IDS",
        "triggered_at": now,
        "created_at": now,
    }
    values.update(overrides)
    return AlertDto(**values)


@pytest.fixture
def dto_factory():
    return make_dto
