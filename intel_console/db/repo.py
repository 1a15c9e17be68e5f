"""Alert repository.

Every public method is a coroutine; the blocking SQLAlchemy work for each call
runs as one unit of work on a worker thread so the caller's event loop stays
responsive.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from intel_console.contracts import AlertSeverity, AlertStatus
from intel_console.db.models import Alert
from intel_console.errors import Error, Result, alert_not_found

logger = structlog.get_logger(__name__)

# columns an update may rewrite; id, triggered_at and created_at are immutable
_MUTABLE_COLUMNS = (
    "alert_name",
    "description",
    "severity",
    "status",
    "source",
    "acknowledged_at",
    "acknowledged_by",
    "resolved_at",
    "resolved_by",
    "resolution",
    "notes",
    "context",
    "modified_at",
    "last_modified_by",
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertFilter:
    severity: Optional[AlertSeverity] = None
    status: Optional[AlertStatus] = None
    search_text: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    take: Optional[int] = None
    skip: Optional[int] = None
    include_deleted: bool = False


class AlertRepository:
    """Persistence boundary for alerts over an injected session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def create(self, alert: Alert) -> str:
        """Insert a fully constructed alert and return its id."""
        return await asyncio.to_thread(self._create, alert)

    async def get_by_id(self, alert_id: str, *, include_deleted: bool = False) -> Optional[Alert]:
        return await asyncio.to_thread(self._get_by_id, alert_id, include_deleted)

    async def get_all(self, alert_filter: Optional[AlertFilter] = None) -> List[Alert]:
        """Filtered alerts, most recently triggered first."""
        return await asyncio.to_thread(self._get_all, alert_filter or AlertFilter())

    async def update(
        self,
        alert: Alert,
        actor: Optional[str],
        *,
        expected_version: Optional[int] = None,
    ) -> Result[Alert]:
        """
        Persist field and state changes on an existing, non-deleted alert.

        The write only lands if the stored row version still equals
        ``expected_version`` (default: the version the alert was loaded with);
        the version is incremented in the same statement.
        """
        version = alert.version if expected_version is None else expected_version
        return await asyncio.to_thread(self._update, alert, actor, version)

    async def soft_delete(self, alert_id: str, actor: Optional[str]) -> Result[bool]:
        return await asyncio.to_thread(self._soft_delete, alert_id, actor)

    async def count_open_by_severity(self) -> Dict[AlertSeverity, int]:
        return await asyncio.to_thread(self._count_open_by_severity)

    async def count_by_status(self) -> Dict[AlertStatus, int]:
        return await asyncio.to_thread(self._count_by_status)

    def _create(self, alert: Alert) -> str:
        with self._session_factory() as session:
            session.add(alert)
            session.commit()
            alert_id = alert.id
        logger.info("alert_created", alert_id=alert_id, severity=str(alert.severity))
        return alert_id

    def _get_by_id(self, alert_id: str, include_deleted: bool) -> Optional[Alert]:
        stmt = select(Alert).where(Alert.id == alert_id)
        if not include_deleted:
            stmt = stmt.where(Alert.is_deleted.is_(False))
        with self._session_factory() as session:
            return session.execute(stmt).scalar_one_or_none()

    def _get_all(self, f: AlertFilter) -> List[Alert]:
        stmt = select(Alert)
        if not f.include_deleted:
            stmt = stmt.where(Alert.is_deleted.is_(False))
        if f.severity is not None:
            stmt = stmt.where(Alert.severity == f.severity)
        if f.status is not None:
            stmt = stmt.where(Alert.status == f.status)
        if f.start_date is not None:
            stmt = stmt.where(Alert.triggered_at >= f.start_date)
        if f.end_date is not None:
            stmt = stmt.where(Alert.triggered_at <= f.end_date)
        if f.search_text and f.search_text.strip():
            term = f.search_text.strip().lower()
            stmt = stmt.where(
                func.lower(Alert.alert_name).contains(term, autoescape=True)
                | func.lower(Alert.description).contains(term, autoescape=True)
                | func.lower(Alert.source).contains(term, autoescape=True)
            )

        stmt = stmt.order_by(Alert.triggered_at.desc(), Alert.created_at.desc())
        if f.skip:
            stmt = stmt.offset(f.skip)
        if f.take is not None:
            stmt = stmt.limit(f.take)

        with self._session_factory() as session:
            return list(session.execute(stmt).scalars().all())

    def _update(self, alert: Alert, actor: Optional[str], expected_version: int) -> Result[Alert]:
        alert.mark_modified(actor)
        values: Dict[str, Any] = {name: getattr(alert, name) for name in _MUTABLE_COLUMNS}
        values["version"] = expected_version + 1

        stmt = (
            update(Alert)
            .where(
                Alert.id == alert.id,
                Alert.is_deleted.is_(False),
                Alert.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            if (result.rowcount or 0) == 0:
                current = session.execute(
                    select(Alert.version).where(Alert.id == alert.id, Alert.is_deleted.is_(False))
                ).scalar_one_or_none()
                session.rollback()
                if current is None:
                    return Result.fail(alert_not_found(alert.id))
                logger.warning(
                    "alert_version_conflict",
                    alert_id=alert.id,
                    expected_version=expected_version,
                    current_version=current,
                )
                return Result.fail(
                    Error.conflict(
                        "Alert.VersionConflict",
                        f"Alert '{alert.id}' was modified by someone else "
                        f"(expected version {expected_version}, found {current}). Reload and retry.",
                    )
                )
            session.commit()

        alert.version = expected_version + 1
        logger.info("alert_updated", alert_id=alert.id, status=str(alert.status), version=alert.version)
        return Result.ok(alert)

    def _soft_delete(self, alert_id: str, actor: Optional[str]) -> Result[bool]:
        stmt = (
            update(Alert)
            .where(Alert.id == alert_id, Alert.is_deleted.is_(False))
            .values(
                is_deleted=True,
                modified_at=_now_utc(),
                last_modified_by=actor.strip() if actor and actor.strip() else None,
                version=Alert.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            if (result.rowcount or 0) == 0:
                session.rollback()
                return Result.fail(alert_not_found(alert_id))
            session.commit()
        logger.info("alert_deleted", alert_id=alert_id, actor=actor)
        return Result.ok(True)

    def _count_open_by_severity(self) -> Dict[AlertSeverity, int]:
        stmt = (
            select(Alert.severity, func.count())
            .where(Alert.is_deleted.is_(False), Alert.status != AlertStatus.resolved)
            .group_by(Alert.severity)
        )
        with self._session_factory() as session:
            return {AlertSeverity(sev): int(n) for sev, n in session.execute(stmt).all()}

    def _count_by_status(self) -> Dict[AlertStatus, int]:
        stmt = (
            select(Alert.status, func.count())
            .where(Alert.is_deleted.is_(False))
            .group_by(Alert.status)
        )
        with self._session_factory() as session:
            return {AlertStatus(st): int(n) for st, n in session.execute(stmt).all()}
