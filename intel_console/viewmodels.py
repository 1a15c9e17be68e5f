"""Presentation state for the alert list and the alert details dialog.

View models talk to the rest of the system only through the mediator and
receive the signed-in user as an explicit ``UserSession``. All state changes
happen on the event loop that awaits them; property setters notify
subscribers so a UI layer can bind to them.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

import structlog

from intel_console.contracts import (
    AlertDto,
    AlertSeverity,
    AlertStatus,
    AlertSummary,
    CreateAlertCommand,
    DeleteAlertCommand,
    GetAlertByIdQuery,
    GetAllAlertsQuery,
    Request,
    UpdateAlertCommand,
)
from intel_console.config import ConsoleConfig
from intel_console.errors import Error, ErrorType, Result
from intel_console.export import default_export_path, write_alerts_csv
from intel_console.lifecycle import can_acknowledge, can_resolve, is_allowed
from intel_console.mediator import Mediator
from intel_console.observability import summarize_alerts
from intel_console.user_session import UserSession

logger = structlog.get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "Operation failed. See the application log for details."


def user_message(error: Error, prefix: str = "") -> str:
    """Text shown for an error result; infrastructure failures stay generic."""
    if error.type == ErrorType.failure:
        return GENERIC_FAILURE_MESSAGE
    return f"{prefix}{error.description}"


PropertyCallback = Callable[[str, Any], None]


class ObservableObject:
    """Minimal property-changed notification."""

    def __init__(self) -> None:
        self._subscribers: List[PropertyCallback] = []

    def subscribe(self, callback: PropertyCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _set(self, name: str, value: Any) -> bool:
        attr = f"_{name}"
        if getattr(self, attr) == value:
            return False
        setattr(self, attr, value)
        self._notify(name, value)
        return True

    def _notify(self, name: str, value: Any) -> None:
        for callback in list(self._subscribers):
            callback(name, value)


class AlertListViewModel(ObservableObject):
    """
    Filtered view over alerts.

    Every change to a filter schedules a fresh ``GetAllAlertsQuery`` after a
    short debounce; a later change cancels the pending one. Results are never
    filtered client-side.
    """

    def __init__(
        self,
        mediator: Mediator,
        session: UserSession,
        *,
        debounce_seconds: float = 0.3,
        page_size: int = 100,
    ) -> None:
        super().__init__()
        self._mediator = mediator
        self._session = session
        self._debounce_seconds = debounce_seconds
        self._page_size = page_size

        self._alerts: List[AlertDto] = []
        self._search_text = ""
        self._selected_severity: Optional[AlertSeverity] = None
        self._selected_status: Optional[AlertStatus] = None
        self._selected_alert: Optional[AlertDto] = None
        self._is_loading = False
        self._status_message = ""

        self._inflight = 0
        self._load_generation = 0
        self._refresh_task: Optional[asyncio.Task[Any]] = None
        self._disposed = False

    @classmethod
    def from_config(cls, mediator: Mediator, session: UserSession, config: ConsoleConfig) -> "AlertListViewModel":
        return cls(
            mediator,
            session,
            debounce_seconds=config.debounce_seconds,
            page_size=config.page_size,
        )

    @property
    def alerts(self) -> List[AlertDto]:
        return list(self._alerts)

    @property
    def search_text(self) -> str:
        return self._search_text

    @search_text.setter
    def search_text(self, value: str) -> None:
        if self._set("search_text", value or ""):
            self._schedule_refresh()

    @property
    def selected_severity(self) -> Optional[AlertSeverity]:
        return self._selected_severity

    @selected_severity.setter
    def selected_severity(self, value: Optional[AlertSeverity]) -> None:
        if self._set("selected_severity", value):
            self._schedule_refresh()

    @property
    def selected_status(self) -> Optional[AlertStatus]:
        return self._selected_status

    @selected_status.setter
    def selected_status(self, value: Optional[AlertStatus]) -> None:
        if self._set("selected_status", value):
            self._schedule_refresh()

    @property
    def selected_alert(self) -> Optional[AlertDto]:
        return self._selected_alert

    @selected_alert.setter
    def selected_alert(self, value: Optional[AlertDto]) -> None:
        self._set("selected_alert", value)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def status_message(self) -> str:
        return self._status_message

    @status_message.setter
    def status_message(self, value: str) -> None:
        self._set("status_message", value)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def summary(self) -> AlertSummary:
        """Counts over the alerts currently shown."""
        return summarize_alerts(self._alerts)

    def build_query(self) -> GetAllAlertsQuery:
        search = self._search_text.strip()
        return GetAllAlertsQuery(
            severity=self._selected_severity,
            status=self._selected_status,
            search_text=search or None,
            take=self._page_size,
        )

    async def load_alerts(self) -> bool:
        """Fetch the list for the current filters; True when it was applied."""
        if self._disposed:
            return False
        self._load_generation += 1
        generation = self._load_generation
        self._begin_loading("Loading alerts...")
        try:
            result = await self._mediator.send(self.build_query())
            if self._disposed or generation != self._load_generation:
                # superseded by a newer fetch or the view went away
                return False
            if result.is_error:
                self.status_message = user_message(result.first_error, "Error loading alerts: ")
                return False
            self._alerts = list(result.value)
            self._notify("alerts", self.alerts)
            if self._selected_alert is not None:
                self.selected_alert = next((a for a in self._alerts if a.id == self._selected_alert.id), None)
            self.status_message = f"Loaded {len(self._alerts)} alert(s)"
            return True
        except Exception:
            logger.error("alert_list_load_failed", exc_info=True)
            if not self._disposed:
                self.status_message = GENERIC_FAILURE_MESSAGE
            return False
        finally:
            self._end_loading()

    async def wait_for_refresh(self) -> None:
        """Wait for a scheduled filter refresh, if any, to settle."""
        task = self._refresh_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    def view_details(self, alert: AlertDto) -> None:
        self.selected_alert = alert

    async def delete_alert(self, alert: AlertDto) -> bool:
        request = DeleteAlertCommand(alert_id=alert.id, deleted_by=self._session.actor)
        return await self._mutate(request, "Deleting alert...", "Alert deleted successfully")

    async def acknowledge_alert(self, alert: AlertDto) -> bool:
        if not can_acknowledge(alert.status):
            self.status_message = f"Alert '{alert.alert_name}' cannot be acknowledged while {alert.status.value}."
            return False
        request = UpdateAlertCommand(
            alert_id=alert.id,
            new_status=AlertStatus.acknowledged,
            updated_by=self._session.actor,
            expected_version=alert.version,
        )
        return await self._mutate(request, "Acknowledging alert...", "Alert acknowledged")

    def export_csv(self, path: Optional[str] = None) -> Path:
        output = write_alerts_csv(self._alerts, path or default_export_path())
        self.status_message = f"Exported {len(self._alerts)} alert(s) to {output}"
        return output

    def dispose(self) -> None:
        """Detach from the view; pending fetches are cancelled and late results dropped."""
        self._disposed = True
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._subscribers.clear()

    async def _mutate(self, request: Request, progress: str, success: str) -> bool:
        if self._disposed:
            return False
        self._begin_loading(progress)
        try:
            result: Result[Any] = await self._mediator.send(request)
            if self._disposed:
                return False
            if result.is_error:
                self.status_message = user_message(result.first_error, "Error: ")
                return False
            # show the store's state, not a local patch
            if await self.load_alerts():
                self.status_message = success
            return True
        except Exception:
            logger.error("alert_list_action_failed", request=type(request).__name__, exc_info=True)
            if not self._disposed:
                self.status_message = GENERIC_FAILURE_MESSAGE
            return False
        finally:
            self._end_loading()

    def _schedule_refresh(self) -> None:
        if self._disposed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet; the owner calls load_alerts() once it starts
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = loop.create_task(self._debounced_refresh())

    async def _debounced_refresh(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        await self.load_alerts()

    def _begin_loading(self, message: str) -> None:
        self._inflight += 1
        self._set("is_loading", True)
        self.status_message = message

    def _end_loading(self) -> None:
        self._inflight = max(0, self._inflight - 1)
        if self._inflight == 0:
            self._set("is_loading", False)


def _observable(name: str) -> property:
    attr = f"_{name}"

    def getter(self: ObservableObject) -> Any:
        return getattr(self, attr)

    def setter(self: ObservableObject, value: Any) -> None:
        self._set(name, value)

    return property(getter, setter)


def _readonly(name: str) -> property:
    attr = f"_{name}"
    return property(lambda self: getattr(self, attr))


class AlertDetailsViewModel(ObservableObject):
    """State behind the create / view / edit alert dialog."""

    def __init__(self, mediator: Mediator, session: UserSession) -> None:
        super().__init__()
        self._mediator = mediator
        self._session = session

        self._alert_id: Optional[str] = None
        self._alert_name = ""
        self._description = ""
        self._severity = AlertSeverity.info
        self._status = AlertStatus.active
        self._source = ""
        self._triggered_at: datetime = datetime.now(timezone.utc)
        self._acknowledged_at: Optional[datetime] = None
        self._acknowledged_by: Optional[str] = None
        self._resolved_at: Optional[datetime] = None
        self._resolved_by: Optional[str] = None
        self._resolution: Optional[str] = None
        self._notes = ""
        self._resolution_notes = ""
        self._version: Optional[int] = None
        self._loaded_status: Optional[AlertStatus] = None

        self._is_edit_mode = False
        self._is_loading = False
        self._is_new_alert = False
        self._error_message = ""
        self._window_title = "Alert Details"
        self._closed: Optional[bool] = None
        self._disposed = False

    alert_name = _observable("alert_name")
    description = _observable("description")
    severity = _observable("severity")
    status = _observable("status")
    source = _observable("source")
    notes = _observable("notes")
    resolution_notes = _observable("resolution_notes")

    alert_id = _readonly("alert_id")
    triggered_at = _readonly("triggered_at")
    acknowledged_at = _readonly("acknowledged_at")
    acknowledged_by = _readonly("acknowledged_by")
    resolved_at = _readonly("resolved_at")
    resolved_by = _readonly("resolved_by")
    resolution = _readonly("resolution")
    version = _readonly("version")
    is_edit_mode = _readonly("is_edit_mode")
    is_loading = _readonly("is_loading")
    is_new_alert = _readonly("is_new_alert")
    error_message = _readonly("error_message")
    window_title = _readonly("window_title")
    closed = _readonly("closed")

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def can_acknowledge(self) -> bool:
        return not self._is_new_alert and can_acknowledge(self._status)

    @property
    def can_resolve(self) -> bool:
        return not self._is_new_alert and can_resolve(self._status)

    @property
    def has_resolution(self) -> bool:
        return bool(self._resolution)

    @property
    def is_view_mode(self) -> bool:
        return not self._is_edit_mode

    def initialize_for_new(self) -> None:
        self._set("is_new_alert", True)
        self._set("is_edit_mode", True)
        self._set("window_title", "Create New Alert")
        self._set("alert_id", None)
        self.alert_name = ""
        self.description = ""
        self.severity = AlertSeverity.warning
        self.status = AlertStatus.active
        self.source = ""
        self.notes = ""
        self.resolution_notes = ""
        self._set("triggered_at", datetime.now(timezone.utc))
        self._set("acknowledged_at", None)
        self._set("acknowledged_by", None)
        self._set("resolved_at", None)
        self._set("resolved_by", None)
        self._set("resolution", None)
        self._set("version", None)
        self._loaded_status = None
        self._set("error_message", "")
        self._set("closed", None)

    def dispose(self) -> None:
        """Detach from the dialog; results that arrive afterwards are dropped."""
        self._disposed = True
        self._subscribers.clear()

    async def initialize_for_edit(self, alert_id: str) -> bool:
        self._set("is_new_alert", False)
        self._set("is_edit_mode", False)
        self._set("window_title", "Alert Details")
        self._set("error_message", "")
        return await self._load(alert_id)

    def load_from_dto(self, dto: AlertDto) -> None:
        self._set("is_new_alert", False)
        self._set("is_edit_mode", False)
        self._set("window_title", "Alert Details")
        self._set("error_message", "")

        self._set("alert_id", dto.id)
        self.alert_name = dto.alert_name
        self.description = dto.description
        self.severity = dto.severity
        self.status = dto.status
        self.source = dto.source
        self._set("triggered_at", dto.triggered_at)
        self._set("acknowledged_at", dto.acknowledged_at)
        self._set("acknowledged_by", dto.acknowledged_by)
        self._set("resolved_at", dto.resolved_at)
        self._set("resolved_by", dto.resolved_by)
        self._set("resolution", dto.resolution)
        self._set("version", dto.version)
        self._loaded_status = dto.status
        self.notes = ""
        self.resolution_notes = ""

    def toggle_edit_mode(self) -> None:
        self._set("is_edit_mode", not self._is_edit_mode)

    def cancel(self) -> None:
        self._set("closed", False)

    async def save(self) -> bool:
        missing = self._missing_required_field()
        if missing:
            self._set("error_message", missing)
            return False

        if self._is_new_alert:
            request: Request = CreateAlertCommand(
                alert_name=self._alert_name,
                description=self._description,
                severity=self._severity,
                source=self._source,
            )
        elif self._alert_id is not None:
            status_changed = self._status != self._loaded_status
            if status_changed and self._status == AlertStatus.resolved and not self._resolution_notes.strip():
                self._set("error_message", "Resolution notes are required when resolving an alert.")
                return False
            request = UpdateAlertCommand(
                alert_id=self._alert_id,
                updated_by=self._session.actor,
                new_status=self._status if status_changed else None,
                alert_name=self._alert_name,
                description=self._description,
                source=self._source,
                severity=self._severity,
                notes=self._notes.strip() or None,
                resolution_notes=self._resolution_notes if status_changed and self._status == AlertStatus.resolved else None,
                expected_version=self._version,
            )
        else:
            self._set("error_message", "No alert loaded.")
            return False

        result = await self._run(request, "save")
        if result is None:
            return False
        if self._is_new_alert:
            # reload so the dialog reflects what the store assigned
            if not await self._load(result.value):
                return False
        else:
            self.load_from_dto(result.value)
        self._set("closed", True)
        return True

    async def acknowledge(self) -> bool:
        if self._alert_id is None:
            return False
        if not self.can_acknowledge:
            self._set("error_message", f"Only active alerts can be acknowledged (status is {self._status.value}).")
            return False
        return await self._transition(AlertStatus.acknowledged)

    async def resolve(self) -> bool:
        if self._alert_id is None:
            return False
        if not self.can_resolve:
            self._set("error_message", "Alert is already resolved.")
            return False
        if not self._resolution_notes.strip():
            self._set("error_message", "Resolution notes are required when resolving an alert.")
            return False
        return await self._transition(AlertStatus.resolved, resolution_notes=self._resolution_notes.strip())

    async def escalate(self) -> bool:
        if self._alert_id is None:
            return False
        if self._status == AlertStatus.escalated or not is_allowed(self._status, AlertStatus.escalated):
            self._set("error_message", f"Alert cannot be escalated while {self._status.value}.")
            return False
        return await self._transition(AlertStatus.escalated)

    async def _transition(self, target: AlertStatus, *, resolution_notes: Optional[str] = None) -> bool:
        request = UpdateAlertCommand(
            alert_id=self._alert_id,
            new_status=target,
            updated_by=self._session.actor,
            resolution_notes=resolution_notes,
            notes=self._notes.strip() or None,
            expected_version=self._version,
        )
        result = await self._run(request, target.value.lower())
        if result is None:
            return False
        self.load_from_dto(result.value)
        return True

    async def _load(self, alert_id: str) -> bool:
        result = await self._run(GetAlertByIdQuery(alert_id=alert_id), "load alert")
        if result is None:
            return False
        self.load_from_dto(result.value)
        return True

    async def _run(self, request: Request, action: str) -> Optional[Result[Any]]:
        """Dispatch and surface any failure in ``error_message``; None on failure or after dispose."""
        if self._disposed:
            return None
        self._set("is_loading", True)
        self._set("error_message", "")
        try:
            result = await self._mediator.send(request)
            if self._disposed:
                return None
            if result.is_error:
                self._set("error_message", user_message(result.first_error))
                return None
            return result
        except Exception:
            logger.error("alert_details_action_failed", action=action, alert_id=self._alert_id, exc_info=True)
            if not self._disposed:
                self._set("error_message", GENERIC_FAILURE_MESSAGE)
            return None
        finally:
            self._set("is_loading", False)

    def _missing_required_field(self) -> Optional[str]:
        if not self._alert_name.strip():
            return "Alert name is required."
        if not self._description.strip():
            return "Description is required."
        if not self._source.strip():
            return "Source is required."
        return None
