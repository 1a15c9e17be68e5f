from __future__ import annotations

import logging
import sys
from collections import Counter
from typing import Iterable, List

import structlog
from structlog.types import Processor

from intel_console.contracts import AlertDto, AlertSeverity, AlertStatus, AlertSummary


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog on top of stdlib logging.

    Console renderer by default; JSON lines when ``json_output`` is set.
    Modules log with ``structlog.get_logger(__name__)`` and key/value context.
    """
    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _pct(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round((float(numerator) / float(denominator)) * 100.0, 2)


def summarize_alerts(alerts: Iterable[AlertDto]) -> AlertSummary:
    rows = list(alerts)
    statuses = Counter(a.status for a in rows)
    open_severities = Counter(a.severity for a in rows if a.status != AlertStatus.resolved)
    resolved = int(statuses.get(AlertStatus.resolved, 0))

    return AlertSummary(
        total=len(rows),
        open=len(rows) - resolved,
        resolved=resolved,
        open_by_severity={s.value: int(open_severities.get(s, 0)) for s in AlertSeverity},
        by_status={s.value: int(statuses.get(s, 0)) for s in AlertStatus},
    )


def render_summary_text(summary: AlertSummary) -> str:
    lines = [
        f"Alerts:   {summary.total}",
        f"Open:     {summary.open}",
        f"Resolved: {summary.resolved} ({_pct(summary.resolved, summary.total)}%)",
        "",
        "Open by severity:",
    ]
    for severity in sorted(AlertSeverity, key=lambda s: s.rank, reverse=True):
        lines.append(f"  - {severity.value}: {summary.open_by_severity.get(severity.value, 0)}")

    lines.extend(["", "By status:"])
    for status in AlertStatus:
        lines.append(f"  - {status.value}: {summary.by_status.get(status.value, 0)}")
    return "\n".join(lines)
