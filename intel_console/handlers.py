"""Command and query handlers, one per alert use case.

Each handler validates the request, calls the repository and maps the outcome
into a ``Result``. Expected failures come back as typed errors; unexpected
exceptions from the persistence layer are logged here and returned as
``failure`` errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, List, Optional, Type, TypeVar

import structlog

from intel_console.contracts import (
    MAX_ACTOR_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MAX_SOURCE_LENGTH,
    AlertDto,
    AlertSeverity,
    AlertStatus,
    AlertSummary,
    CreateAlertCommand,
    DeleteAlertCommand,
    GetAlertByIdQuery,
    GetAlertSummaryQuery,
    GetAllAlertsQuery,
    Request,
    UpdateAlertCommand,
)
from intel_console.db.models import Alert
from intel_console.db.repo import AlertFilter, AlertRepository
from intel_console.errors import Error, Result, alert_not_found
from intel_console.lifecycle import check_transition

logger = structlog.get_logger(__name__)

TRequest = TypeVar("TRequest", bound=Request)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _required(value: Optional[str], code: str, label: str, max_length: int) -> List[Error]:
    if _blank(value):
        return [Error.validation(f"Alert.{code}Required", f"{label} is required.")]
    return _max_length(value, code, label, max_length)


def _max_length(value: Optional[str], code: str, label: str, max_length: int) -> List[Error]:
    if value is not None and len(value.strip()) > max_length:
        return [
            Error.validation(
                f"Alert.{code}TooLong",
                f"{label} must not exceed {max_length} characters.",
            )
        ]
    return []


def _failure(use_case: str, action: str) -> Result[Any]:
    # exception details go to the log only
    return Result.fail(Error.failure(f"{use_case}.Failed", f"Failed to {action}."))


class Handler(ABC, Generic[TRequest]):
    request_type: ClassVar[Type[Request]]

    @abstractmethod
    async def handle(self, request: TRequest) -> Result[Any]:
        raise NotImplementedError


class CreateAlertHandler(Handler[CreateAlertCommand]):
    request_type = CreateAlertCommand

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    @staticmethod
    def validate(request: CreateAlertCommand) -> List[Error]:
        errors: List[Error] = []
        errors += _required(request.alert_name, "Name", "Alert name", MAX_NAME_LENGTH)
        errors += _required(request.description, "Description", "Description", MAX_DESCRIPTION_LENGTH)
        errors += _required(request.source, "Source", "Source", MAX_SOURCE_LENGTH)
        return errors

    async def handle(self, request: CreateAlertCommand) -> Result[str]:
        errors = self.validate(request)
        if errors:
            return Result.from_errors(errors)

        alert = Alert.new(
            alert_name=request.alert_name.strip(),
            description=request.description.strip(),
            severity=request.severity,
            source=request.source.strip(),
        )
        try:
            alert_id = await self._repository.create(alert)
        except Exception:
            logger.error("create_alert_failed", alert_name=alert.alert_name, exc_info=True)
            return _failure("CreateAlert", "create alert")
        return Result.ok(alert_id)


class UpdateAlertHandler(Handler[UpdateAlertCommand]):
    """
    Applies metadata edits, a guarded status transition and an optional note
    to one alert, then persists everything in a single versioned write.
    Acknowledge, resolve and escalate are update requests with a target status.
    """

    request_type = UpdateAlertCommand

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    @staticmethod
    def validate(request: UpdateAlertCommand) -> List[Error]:
        errors: List[Error] = []
        if _blank(request.alert_id):
            errors.append(Error.validation("Alert.IdRequired", "Alert ID is required."))
        errors += _required(request.updated_by, "UpdatedBy", "UpdatedBy", MAX_ACTOR_LENGTH)
        if request.new_status == AlertStatus.resolved and _blank(request.resolution_notes):
            errors.append(
                Error.validation(
                    "Alert.ResolutionRequired",
                    "Resolution notes are required when resolving an alert.",
                )
            )
        errors += _max_length(request.resolution_notes, "ResolutionNotes", "Resolution notes", MAX_NOTES_LENGTH)
        errors += _max_length(request.notes, "Notes", "Notes", MAX_NOTES_LENGTH)
        errors += _max_length(request.alert_name, "Name", "Alert name", MAX_NAME_LENGTH)
        errors += _max_length(request.description, "Description", "Description", MAX_DESCRIPTION_LENGTH)
        errors += _max_length(request.source, "Source", "Source", MAX_SOURCE_LENGTH)
        return errors

    async def handle(self, request: UpdateAlertCommand) -> Result[AlertDto]:
        errors = self.validate(request)
        if errors:
            return Result.from_errors(errors)

        actor = request.updated_by.strip()
        try:
            alert = await self._repository.get_by_id(request.alert_id)
        except Exception:
            logger.error("update_alert_load_failed", alert_id=request.alert_id, exc_info=True)
            return _failure("UpdateAlert", "update alert")
        if alert is None:
            return Result.fail(alert_not_found(request.alert_id))

        expected_version = alert.version
        if request.expected_version is not None and request.expected_version != alert.version:
            return Result.fail(
                Error.conflict(
                    "Alert.VersionConflict",
                    f"Alert '{alert.id}' was modified by someone else "
                    f"(expected version {request.expected_version}, found {alert.version}). Reload and retry.",
                )
            )

        changed = False
        if self._has_metadata(request):
            alert.update_metadata(
                alert_name=alert.alert_name if _blank(request.alert_name) else request.alert_name.strip(),
                description=alert.description if _blank(request.description) else request.description.strip(),
                severity=request.severity or alert.severity,
                source=alert.source if _blank(request.source) else request.source.strip(),
                actor=actor,
            )
            changed = True

        if request.new_status is not None and request.new_status != alert.status:
            transition_error = check_transition(alert.status, request.new_status)
            if transition_error is not None:
                return Result.fail(transition_error)
            self._apply_status(alert, request.new_status, actor, request.resolution_notes)
            changed = True

        if not _blank(request.notes):
            alert.add_note(actor, request.notes.strip())
            changed = True

        if not changed:
            return Result.ok(AlertDto.model_validate(alert))

        try:
            saved = await self._repository.update(alert, actor, expected_version=expected_version)
        except Exception:
            logger.error("update_alert_failed", alert_id=alert.id, exc_info=True)
            return _failure("UpdateAlert", "update alert")
        if saved.is_error:
            return Result.from_errors(saved.errors)
        return Result.ok(AlertDto.model_validate(saved.value))

    @staticmethod
    def _has_metadata(request: UpdateAlertCommand) -> bool:
        return (
            not _blank(request.alert_name)
            or not _blank(request.description)
            or not _blank(request.source)
            or request.severity is not None
        )

    @staticmethod
    def _apply_status(alert: Alert, target: AlertStatus, actor: str, resolution_notes: Optional[str]) -> None:
        if target == AlertStatus.acknowledged:
            alert.acknowledge(actor)
        elif target == AlertStatus.resolved:
            alert.resolve(actor, (resolution_notes or "").strip())
        elif target == AlertStatus.escalated:
            alert.escalate(actor)
        elif target == AlertStatus.active:
            alert.reactivate(actor)


class DeleteAlertHandler(Handler[DeleteAlertCommand]):
    request_type = DeleteAlertCommand

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    async def handle(self, request: DeleteAlertCommand) -> Result[bool]:
        errors: List[Error] = []
        if _blank(request.alert_id):
            errors.append(Error.validation("Alert.IdRequired", "Alert ID is required."))
        errors += _required(request.deleted_by, "DeletedBy", "DeletedBy", MAX_ACTOR_LENGTH)
        if errors:
            return Result.from_errors(errors)

        try:
            return await self._repository.soft_delete(request.alert_id, request.deleted_by.strip())
        except Exception:
            logger.error("delete_alert_failed", alert_id=request.alert_id, exc_info=True)
            return _failure("DeleteAlert", "delete alert")


class GetAllAlertsHandler(Handler[GetAllAlertsQuery]):
    request_type = GetAllAlertsQuery

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    @staticmethod
    def validate(request: GetAllAlertsQuery) -> List[Error]:
        errors: List[Error] = []
        if request.take is not None and request.take <= 0:
            errors.append(Error.validation("Alerts.InvalidTake", "Take must be greater than zero."))
        if request.skip is not None and request.skip < 0:
            errors.append(Error.validation("Alerts.InvalidSkip", "Skip must not be negative."))
        if request.start_date and request.end_date and request.start_date > request.end_date:
            errors.append(Error.validation("Alerts.InvalidDateRange", "Start date must be before end date."))
        return errors

    async def handle(self, request: GetAllAlertsQuery) -> Result[List[AlertDto]]:
        errors = self.validate(request)
        if errors:
            return Result.from_errors(errors)

        alert_filter = AlertFilter(
            severity=request.severity,
            status=request.status,
            search_text=None if _blank(request.search_text) else request.search_text,
            start_date=request.start_date,
            end_date=request.end_date,
            take=request.take,
            skip=request.skip,
            include_deleted=request.include_deleted,
        )
        try:
            alerts = await self._repository.get_all(alert_filter)
        except Exception:
            logger.error("get_all_alerts_failed", exc_info=True)
            return _failure("GetAllAlerts", "retrieve alerts")
        return Result.ok([AlertDto.model_validate(a) for a in alerts])


class GetAlertByIdHandler(Handler[GetAlertByIdQuery]):
    request_type = GetAlertByIdQuery

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    async def handle(self, request: GetAlertByIdQuery) -> Result[AlertDto]:
        if _blank(request.alert_id):
            return Result.fail(Error.validation("Alert.IdRequired", "Alert ID is required."))
        try:
            alert = await self._repository.get_by_id(request.alert_id)
        except Exception:
            logger.error("get_alert_failed", alert_id=request.alert_id, exc_info=True)
            return _failure("GetAlertById", "retrieve alert")
        if alert is None:
            return Result.fail(alert_not_found(request.alert_id))
        return Result.ok(AlertDto.model_validate(alert))


class GetAlertSummaryHandler(Handler[GetAlertSummaryQuery]):
    request_type = GetAlertSummaryQuery

    def __init__(self, repository: AlertRepository) -> None:
        self._repository = repository

    async def handle(self, request: GetAlertSummaryQuery) -> Result[AlertSummary]:
        try:
            open_by_severity = await self._repository.count_open_by_severity()
            by_status = await self._repository.count_by_status()
        except Exception:
            logger.error("alert_summary_failed", exc_info=True)
            return _failure("GetAlertSummary", "summarize alerts")

        total = sum(by_status.values())
        resolved = by_status.get(AlertStatus.resolved, 0)
        return Result.ok(
            AlertSummary(
                total=total,
                open=total - resolved,
                resolved=resolved,
                open_by_severity={s.value: open_by_severity.get(s, 0) for s in AlertSeverity},
                by_status={s.value: by_status.get(s, 0) for s in AlertStatus},
            )
        )


def alert_handlers(repository: AlertRepository) -> List[Handler[Any]]:
    return [
        CreateAlertHandler(repository),
        UpdateAlertHandler(repository),
        DeleteAlertHandler(repository),
        GetAllAlertsHandler(repository),
        GetAlertByIdHandler(repository),
        GetAlertSummaryHandler(repository),
    ]
