"""SQLAlchemy models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from intel_console.contracts import (
    MAX_ACTOR_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SOURCE_LENGTH,
    AlertSeverity,
    AlertStatus,
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_alert_id() -> str:
    return uuid4().hex


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, including on engines that drop tzinfo (SQLite)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _enum_column(enum_cls: type) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Declarative base for intel-console DB models."""


class Alert(Base):
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_alert_id)
    alert_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(_enum_column(AlertSeverity), nullable=False, index=True)
    status: Mapped[AlertStatus] = mapped_column(
        _enum_column(AlertStatus), nullable=False, index=True, default=AlertStatus.active
    )
    source: Mapped[str] = mapped_column(String(MAX_SOURCE_LENGTH), nullable=False, index=True)
    triggered_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True, default=_now_utc)

    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(String(MAX_ACTOR_LENGTH), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(MAX_ACTOR_LENGTH), nullable=True)
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    context: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_now_utc)
    modified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_modified_by: Mapped[str | None] = mapped_column(String(MAX_ACTOR_LENGTH), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @classmethod
    def new(
        cls,
        alert_name: str,
        description: str,
        severity: AlertSeverity,
        source: str,
        *,
        triggered_at: Optional[datetime] = None,
    ) -> "Alert":
        now = _now_utc()
        return cls(
            id=new_alert_id(),
            alert_name=alert_name,
            description=description,
            severity=AlertSeverity(severity),
            status=AlertStatus.active,
            source=source,
            triggered_at=triggered_at or now,
            context={},
            is_deleted=False,
            created_at=now,
            version=1,
        )

    def mark_modified(self, actor: Optional[str]) -> None:
        self.modified_at = _now_utc()
        self.last_modified_by = actor.strip() if actor and actor.strip() else None

    def update_metadata(
        self,
        alert_name: str,
        description: str,
        severity: AlertSeverity,
        source: str,
        actor: str,
    ) -> None:
        self.alert_name = alert_name
        self.description = description
        self.severity = AlertSeverity(severity)
        self.source = source
        self.mark_modified(actor)

    def acknowledge(self, actor: str) -> None:
        self.status = AlertStatus.acknowledged
        self.acknowledged_at = _now_utc()
        self.acknowledged_by = actor
        self.mark_modified(actor)

    def resolve(self, actor: str, resolution: str) -> None:
        self.status = AlertStatus.resolved
        self.resolved_at = _now_utc()
        self.resolved_by = actor
        self.resolution = resolution
        self.mark_modified(actor)

    def escalate(self, actor: str) -> None:
        self.status = AlertStatus.escalated
        self.set_context("escalated_at", _now_utc().isoformat())
        self.set_context("escalated_by", actor)
        self.mark_modified(actor)

    def reactivate(self, actor: str) -> None:
        self.status = AlertStatus.active
        # the previous acknowledgement survives only in context
        if self.acknowledged_at is not None:
            self.set_context("previous_acknowledged_at", self.acknowledged_at.isoformat())
            self.set_context("previous_acknowledged_by", self.acknowledged_by)
        self.acknowledged_at = None
        self.acknowledged_by = None
        self.set_context("reactivated_at", _now_utc().isoformat())
        self.set_context("reactivated_by", actor)
        self.mark_modified(actor)

    def add_note(self, actor: str, text: str) -> None:
        stamp = _now_utc().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] {actor}: {text}"
        self.notes = f"{self.notes}\n{line}" if self.notes else line
        self.mark_modified(actor)

    def set_context(self, key: str, value: Any) -> None:
        # reassign so the JSON column is flagged dirty
        ctx = dict(self.context or {})
        ctx[key] = value
        self.context = ctx

