from __future__ import annotations

import asyncio
import csv

import pytest

from intel_console.contracts import (
    AlertSeverity,
    AlertStatus,
    GetAllAlertsQuery,
    UpdateAlertCommand,
)
from intel_console.config import ConsoleConfig
from intel_console.errors import Error, Result
from intel_console.mediator import build_mediator
from intel_console.viewmodels import (
    GENERIC_FAILURE_MESSAGE,
    AlertDetailsViewModel,
    AlertListViewModel,
)


class _ScriptedMediator:
    """Answers each send with the next queued outcome and records the request."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def send(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _GatedMediator:
    """Each send blocks until the test releases it with a result."""

    def __init__(self):
        self.calls = []

    async def send(self, request):
        call = {"request": request, "gate": asyncio.Event(), "result": None}
        self.calls.append(call)
        await call["gate"].wait()
        return call["result"]

    def release(self, index, result):
        self.calls[index]["result"] = result
        self.calls[index]["gate"].set()


class _CountingMediator:
    def __init__(self, inner):
        self.inner = inner
        self.queries = []

    async def send(self, request):
        if isinstance(request, GetAllAlertsQuery):
            self.queries.append(request)
        return await self.inner.send(request)


class _BrokenStore:
    """Repository whose reads fail the way a misconfigured database does."""

    async def get_all(self, alert_filter):
        raise RuntimeError(
            "(sqlite3.OperationalError) no such table: alerts [SQL: SELECT alerts.id FROM alerts LIMIT ?]"
        )

    async def get_by_id(self, alert_id, include_deleted=False):
        raise RuntimeError(
            'connection to server at "db.internal" failed: password authentication failed for user "console"'
        )


def _recorder(vm):
    events = []
    vm.subscribe(lambda name, value: events.append((name, value)))
    return events


# --- list view model ---------------------------------------------------------


@pytest.mark.asyncio
async def test_load_alerts_populates_list(mediator, analyst, create_alert):
    await create_alert(alert_name="One")
    await create_alert(alert_name="Two")
    vm = AlertListViewModel(mediator, analyst)
    events = _recorder(vm)

    assert await vm.load_alerts() is True
    assert {a.alert_name for a in vm.alerts} == {"One", "Two"}
    assert vm.status_message == "Loaded 2 alert(s)"
    assert vm.is_loading is False

    loading = [value for name, value in events if name == "is_loading"]
    assert loading == [True, False]
    assert ("status_message", "Loading alerts...") in events


@pytest.mark.asyncio
async def test_filter_changes_are_debounced_into_one_query(mediator, analyst, create_alert):
    await create_alert(alert_name="Beacon to known C2")
    await create_alert(alert_name="Disk full")
    counting = _CountingMediator(mediator)
    vm = AlertListViewModel(counting, analyst, debounce_seconds=0.05)

    vm.search_text = "b"
    vm.search_text = "be"
    vm.search_text = "beacon"
    await vm.wait_for_refresh()

    assert len(counting.queries) == 1
    assert counting.queries[0].search_text == "beacon"
    assert [a.alert_name for a in vm.alerts] == ["Beacon to known C2"]


@pytest.mark.asyncio
async def test_severity_and_status_filters_are_sent_to_the_query(mediator, analyst, create_alert):
    await create_alert(alert_name="Critical one", severity=AlertSeverity.critical)
    await create_alert(alert_name="Info one", severity=AlertSeverity.info)
    vm = AlertListViewModel(mediator, analyst, debounce_seconds=0.01, page_size=50)

    vm.selected_severity = AlertSeverity.critical
    await vm.wait_for_refresh()
    assert [a.alert_name for a in vm.alerts] == ["Critical one"]

    vm.selected_status = AlertStatus.resolved
    await vm.wait_for_refresh()
    assert vm.alerts == []

    query = vm.build_query()
    assert query.severity == AlertSeverity.critical
    assert query.status == AlertStatus.resolved
    assert query.take == 50


@pytest.mark.asyncio
async def test_superseded_load_is_discarded(analyst, dto_factory):
    gated = _GatedMediator()
    vm = AlertListViewModel(gated, analyst)

    first = asyncio.create_task(vm.load_alerts())
    await asyncio.sleep(0)
    second = asyncio.create_task(vm.load_alerts())
    await asyncio.sleep(0)
    assert vm.is_loading

    gated.release(1, Result.ok([dto_factory(id="new")]))
    assert await second is True
    # the older fetch is still outstanding
    assert vm.is_loading

    gated.release(0, Result.ok([dto_factory(id="old")]))
    assert await first is False
    assert [a.id for a in vm.alerts] == ["new"]
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_load_error_result_sets_status_message(analyst):
    scripted = _ScriptedMediator(
        Result.fail(Error.validation("Alerts.InvalidTake", "Take must be greater than zero."))
    )
    vm = AlertListViewModel(scripted, analyst)

    assert await vm.load_alerts() is False
    assert vm.status_message == "Error loading alerts: Take must be greater than zero."
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_load_exception_shows_generic_message(analyst):
    vm = AlertListViewModel(_ScriptedMediator(RuntimeError("boom")), analyst)

    assert await vm.load_alerts() is False
    assert vm.status_message == GENERIC_FAILURE_MESSAGE
    assert "boom" not in vm.status_message
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_store_failure_does_not_leak_database_details(analyst):
    vm = AlertListViewModel(build_mediator(_BrokenStore()), analyst)

    assert await vm.load_alerts() is False
    assert vm.status_message == GENERIC_FAILURE_MESSAGE
    assert "SQL" not in vm.status_message
    assert "no such table" not in vm.status_message


@pytest.mark.asyncio
async def test_acknowledge_alert_reloads_from_store(mediator, analyst, create_alert):
    await create_alert()
    vm = AlertListViewModel(mediator, analyst)
    await vm.load_alerts()

    assert await vm.acknowledge_alert(vm.alerts[0]) is True
    assert vm.status_message == "Alert acknowledged"
    assert vm.alerts[0].status == AlertStatus.acknowledged
    assert vm.alerts[0].acknowledged_by == "analyst1"


@pytest.mark.asyncio
async def test_acknowledge_alert_blocked_unless_active(analyst, dto_factory):
    scripted = _ScriptedMediator()
    vm = AlertListViewModel(scripted, analyst)
    resolved = dto_factory(alert_name="Old incident", status=AlertStatus.resolved)

    assert await vm.acknowledge_alert(resolved) is False
    assert vm.status_message == "Alert 'Old incident' cannot be acknowledged while Resolved."
    assert scripted.requests == []


@pytest.mark.asyncio
async def test_acknowledge_stale_alert_reports_conflict(mediator, analyst, create_alert):
    alert_id = await create_alert()
    vm = AlertListViewModel(mediator, analyst)
    await vm.load_alerts()
    stale = vm.alerts[0]

    await mediator.send(UpdateAlertCommand(alert_id=alert_id, updated_by="someone", notes="touched"))

    assert await vm.acknowledge_alert(stale) is False
    assert vm.status_message.startswith("Error: ")
    assert "modified by someone else" in vm.status_message
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_delete_alert_removes_it_from_list(mediator, analyst, create_alert):
    await create_alert(alert_name="Keep")
    await create_alert(alert_name="Drop")
    vm = AlertListViewModel(mediator, analyst)
    await vm.load_alerts()
    target = next(a for a in vm.alerts if a.alert_name == "Drop")

    assert await vm.delete_alert(target) is True
    assert vm.status_message == "Alert deleted successfully"
    assert [a.alert_name for a in vm.alerts] == ["Keep"]


@pytest.mark.asyncio
async def test_selection_follows_reload(mediator, analyst, create_alert):
    await create_alert()
    vm = AlertListViewModel(mediator, analyst)
    await vm.load_alerts()
    vm.view_details(vm.alerts[0])

    await vm.acknowledge_alert(vm.alerts[0])
    assert vm.selected_alert is not None
    assert vm.selected_alert.status == AlertStatus.acknowledged


@pytest.mark.asyncio
async def test_dispose_cancels_pending_refresh(mediator, analyst):
    counting = _CountingMediator(mediator)
    vm = AlertListViewModel(counting, analyst, debounce_seconds=0.02)

    vm.search_text = "anything"
    vm.dispose()
    await asyncio.sleep(0.05)

    assert counting.queries == []
    assert vm.is_disposed
    assert await vm.load_alerts() is False


@pytest.mark.asyncio
async def test_from_config_applies_page_size_and_debounce(mediator, analyst, create_alert):
    await create_alert(alert_name="Port scan")
    counting = _CountingMediator(mediator)
    vm = AlertListViewModel.from_config(counting, analyst, ConsoleConfig(page_size=7, debounce_ms=0))

    assert vm.build_query().take == 7

    vm.search_text = "port"
    await vm.wait_for_refresh()

    assert len(counting.queries) == 1
    assert counting.queries[0].take == 7
    assert [a.alert_name for a in vm.alerts] == ["Port scan"]


@pytest.mark.asyncio
async def test_summary_and_export(mediator, analyst, create_alert, tmp_path):
    await create_alert(severity=AlertSeverity.critical)
    await create_alert(severity=AlertSeverity.info)
    vm = AlertListViewModel(mediator, analyst)
    await vm.load_alerts()

    summary = vm.summary
    assert summary.total == 2
    assert summary.open_by_severity["Critical"] == 1

    out = vm.export_csv(str(tmp_path / "alerts.csv"))
    with out.open(encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 2
    assert vm.status_message == f"Exported 2 alert(s) to {out}"


# --- details view model ------------------------------------------------------


@pytest.mark.asyncio
async def test_new_alert_save_validates_then_creates(mediator, analyst):
    vm = AlertDetailsViewModel(mediator, analyst)
    vm.initialize_for_new()
    assert vm.window_title == "Create New Alert"
    assert vm.severity == AlertSeverity.warning
    assert vm.is_edit_mode and vm.is_new_alert

    assert await vm.save() is False
    assert vm.error_message == "Alert name is required."

    vm.alert_name = "Suspicious process"
    vm.description = "powershell spawned by winword"
    assert await vm.save() is False
    assert vm.error_message == "Source is required."

    vm.source = "EDR"
    assert await vm.save() is True
    assert vm.closed is True
    assert vm.alert_id is not None
    assert vm.status == AlertStatus.active
    assert vm.version == 1
    assert vm.is_new_alert is False


@pytest.mark.asyncio
async def test_edit_resolve_requires_notes(mediator, analyst, create_alert):
    alert_id = await create_alert()
    vm = AlertDetailsViewModel(mediator, analyst)
    assert await vm.initialize_for_edit(alert_id) is True
    assert vm.is_view_mode
    assert vm.can_resolve

    assert await vm.resolve() is False
    assert vm.error_message == "Resolution notes are required when resolving an alert."

    vm.resolution_notes = "Confirmed false positive"
    assert await vm.resolve() is True
    assert vm.status == AlertStatus.resolved
    assert vm.resolution == "Confirmed false positive"
    assert vm.resolved_by == "analyst1"
    assert vm.has_resolution
    assert not vm.can_resolve


@pytest.mark.asyncio
async def test_details_acknowledge_and_escalate(mediator, analyst, create_alert):
    alert_id = await create_alert()
    vm = AlertDetailsViewModel(mediator, analyst)
    await vm.initialize_for_edit(alert_id)

    assert await vm.acknowledge() is True
    assert vm.status == AlertStatus.acknowledged
    assert vm.acknowledged_by == "analyst1"

    assert await vm.acknowledge() is False
    assert "Only active alerts" in vm.error_message

    assert await vm.escalate() is True
    assert vm.status == AlertStatus.escalated
    assert vm.version == 3


@pytest.mark.asyncio
async def test_concurrent_edits_conflict(mediator, analyst, create_alert):
    alert_id = await create_alert()
    first = AlertDetailsViewModel(mediator, analyst)
    second = AlertDetailsViewModel(mediator, analyst)
    await first.initialize_for_edit(alert_id)
    await second.initialize_for_edit(alert_id)

    first.toggle_edit_mode()
    first.description = "Updated by first"
    assert await first.save() is True

    second.toggle_edit_mode()
    second.description = "Updated by second"
    assert await second.save() is False
    assert "modified by someone else" in second.error_message
    assert second.closed is None


@pytest.mark.asyncio
async def test_editing_resolved_alert_does_not_need_new_notes(mediator, analyst, create_alert):
    alert_id = await create_alert()
    await mediator.send(
        UpdateAlertCommand(
            alert_id=alert_id, new_status=AlertStatus.resolved, updated_by="analyst1", resolution_notes="Done"
        )
    )
    vm = AlertDetailsViewModel(mediator, analyst)
    await vm.initialize_for_edit(alert_id)
    vm.toggle_edit_mode()
    vm.description = "Root cause: expired certificate"

    assert await vm.save() is True
    assert vm.description == "Root cause: expired certificate"
    assert vm.resolution == "Done"


@pytest.mark.asyncio
async def test_edit_unknown_alert_reports_not_found(mediator, analyst):
    vm = AlertDetailsViewModel(mediator, analyst)
    assert await vm.initialize_for_edit("missing") is False
    assert vm.error_message == "Alert with ID 'missing' was not found."
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_details_exception_shows_generic_message(analyst, dto_factory):
    vm = AlertDetailsViewModel(_ScriptedMediator(RuntimeError("socket closed")), analyst)
    vm.load_from_dto(dto_factory())

    assert await vm.acknowledge() is False
    assert vm.error_message == GENERIC_FAILURE_MESSAGE
    assert vm.is_loading is False


@pytest.mark.asyncio
async def test_details_store_failure_does_not_leak_connection_details(analyst):
    vm = AlertDetailsViewModel(build_mediator(_BrokenStore()), analyst)

    assert await vm.initialize_for_edit("a1") is False
    assert vm.error_message == GENERIC_FAILURE_MESSAGE
    assert "password" not in vm.error_message
    assert "db.internal" not in vm.error_message


@pytest.mark.asyncio
async def test_details_result_after_dispose_is_dropped(analyst, dto_factory):
    gated = _GatedMediator()
    vm = AlertDetailsViewModel(gated, analyst)
    events = _recorder(vm)

    pending = asyncio.create_task(vm.initialize_for_edit("a1"))
    await asyncio.sleep(0)
    assert vm.is_loading

    vm.dispose()
    seen = len(events)
    gated.release(0, Result.ok(dto_factory(alert_name="Late arrival")))

    assert await pending is False
    assert vm.is_disposed
    assert vm.alert_id is None
    assert vm.alert_name == ""
    assert len(events) == seen
    assert await vm.acknowledge() is False
    assert len(gated.calls) == 1


def test_initialize_for_new_clears_previous_alert(mediator, analyst, dto_factory):
    vm = AlertDetailsViewModel(mediator, analyst)
    vm.load_from_dto(
        dto_factory(
            status=AlertStatus.resolved,
            acknowledged_by="analyst1",
            resolved_by="lead",
            resolution="False positive",
        )
    )
    vm.notes = "draft note"
    vm.resolution_notes = "draft resolution"

    vm.initialize_for_new()

    assert vm.is_new_alert
    assert vm.alert_id is None
    assert vm.status == AlertStatus.active
    assert vm.has_resolution is False
    assert vm.resolution is None
    assert vm.acknowledged_by is None
    assert vm.resolved_by is None
    assert vm.notes == ""
    assert vm.resolution_notes == ""
    assert vm.version is None


def test_cancel_closes_without_saving(mediator, analyst):
    vm = AlertDetailsViewModel(mediator, analyst)
    vm.initialize_for_new()
    vm.cancel()
    assert vm.closed is False
