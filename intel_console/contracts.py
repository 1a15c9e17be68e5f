from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class AlertSeverity(StrEnum):
    info = "Info"
    warning = "Warning"
    critical = "Critical"
    emergency = "Emergency"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None

    @property
    def rank(self) -> int:
        return list(AlertSeverity).index(self)


class AlertStatus(StrEnum):
    active = "Active"
    acknowledged = "Acknowledged"
    resolved = "Resolved"
    escalated = "Escalated"

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


SEVERITY_COLORS: Dict[AlertSeverity, str] = {
    AlertSeverity.info: "#00E5FF",
    AlertSeverity.warning: "#FF6B00",
    AlertSeverity.critical: "#FF0055",
    AlertSeverity.emergency: "#FF0055",
}

STATUS_COLORS: Dict[AlertStatus, str] = {
    AlertStatus.active: "#FF0055",
    AlertStatus.acknowledged: "#FF6B00",
    AlertStatus.resolved: "#39FF14",
    AlertStatus.escalated: "#BF40FF",
}

DEFAULT_COLOR = "#607D8B"

# column limits shared by validation and the ORM model
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_SOURCE_LENGTH = 100
MAX_ACTOR_LENGTH = 100
MAX_NOTES_LENGTH = 2000


class Request(BaseModel):
    """Base for immutable command/query values routed by the mediator."""

    model_config = ConfigDict(frozen=True)


class CreateAlertCommand(Request):
    alert_name: str
    description: str
    severity: AlertSeverity
    source: str


class UpdateAlertCommand(Request):
    alert_id: str
    updated_by: str = ""
    new_status: Optional[AlertStatus] = None
    resolution_notes: Optional[str] = None
    notes: Optional[str] = None

    alert_name: Optional[str] = None
    description: Optional[str] = None
    source: Optional[str] = None
    severity: Optional[AlertSeverity] = None

    # row version the caller last saw; None means "whatever is loaded now"
    expected_version: Optional[int] = None


class DeleteAlertCommand(Request):
    alert_id: str
    deleted_by: str


class GetAllAlertsQuery(Request):
    severity: Optional[AlertSeverity] = None
    status: Optional[AlertStatus] = None
    search_text: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    take: Optional[int] = 100
    skip: Optional[int] = None
    include_deleted: bool = False


class GetAlertByIdQuery(Request):
    alert_id: str


class GetAlertSummaryQuery(Request):
    pass


class AlertDto(BaseModel):
    """Flattened, presentation-facing projection of an alert row."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    alert_name: str
    description: str
    severity: AlertSeverity
    status: AlertStatus
    source: str
    triggered_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    notes: Optional[str] = None
    is_deleted: bool = False
    created_at: datetime
    modified_at: Optional[datetime] = None
    last_modified_by: Optional[str] = None
    version: int = 1

    @computed_field  # type: ignore[prop-decorator]
    @property
    def severity_color(self) -> str:
        return SEVERITY_COLORS.get(self.severity, DEFAULT_COLOR)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_color(self) -> str:
        return STATUS_COLORS.get(self.status, DEFAULT_COLOR)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_acknowledge(self) -> bool:
        return self.status == AlertStatus.active

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_resolve(self) -> bool:
        return self.status != AlertStatus.resolved

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_deletable(self) -> bool:
        return not self.is_deleted

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_resolution(self) -> bool:
        return bool(self.resolution)


class AlertSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    open: int = 0
    resolved: int = 0
    open_by_severity: Dict[str, int] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)
