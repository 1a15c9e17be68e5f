from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional

from intel_console.contracts import AlertDto

CSV_COLUMNS: List[str] = [
    "id",
    "alert_name",
    "description",
    "severity",
    "status",
    "source",
    "triggered_at",
    "acknowledged_at",
    "acknowledged_by",
    "resolved_at",
    "resolved_by",
    "resolution",
]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return str(value)


def default_export_path(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    return f"output/alerts_{stamp}.csv"


def write_alerts_csv(alerts: Iterable[AlertDto], output_path: str) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_COLUMNS)
        for alert in alerts:
            writer.writerow([_cell(getattr(alert, col)) for col in CSV_COLUMNS])
    return path
