from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from intel_console.db.session import DEFAULT_DATABASE_URL

DEFAULT_CONFIG_PATH = "config/console.yaml"


@dataclass(frozen=True)
class ConsoleConfig:
    database_url: str = DEFAULT_DATABASE_URL
    default_actor: Optional[str] = None
    page_size: int = 100
    debounce_ms: int = 300
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _as_actor(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValueError(f"default_actor must be a string, got {value!r}")
    return str(value).strip() or None


def load_console_config(path: Optional[str] = None) -> ConsoleConfig:
    """
    Load settings from YAML, then apply environment overrides.

    A missing file is not an error; defaults apply. Environment:
    INTEL_CONSOLE_CONFIG (file path), DATABASE_URL, INTEL_CONSOLE_ACTOR,
    LOG_LEVEL, LOG_JSON.
    """
    config_path = Path(path or os.getenv("INTEL_CONSOLE_CONFIG") or DEFAULT_CONFIG_PATH)
    data: Dict[str, Any] = {}
    if config_path.is_file():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path}: expected a mapping at the top level")

    config = ConsoleConfig(
        database_url=str(data.get("database_url") or DEFAULT_DATABASE_URL),
        default_actor=_as_actor(data.get("default_actor")),
        page_size=_as_int(data, "page_size", 100),
        debounce_ms=_as_int(data, "debounce_ms", 300),
        log_level=str(data.get("log_level", "INFO")).upper(),
        log_json=_as_bool(data.get("log_json", False)),
    )
    if config.page_size <= 0:
        raise ValueError("page_size must be greater than zero")
    if config.debounce_ms < 0:
        raise ValueError("debounce_ms must not be negative")

    overrides: Dict[str, Any] = {}
    if os.getenv("DATABASE_URL"):
        overrides["database_url"] = os.environ["DATABASE_URL"]
    if os.getenv("INTEL_CONSOLE_ACTOR"):
        overrides["default_actor"] = _as_actor(os.environ["INTEL_CONSOLE_ACTOR"])
    if os.getenv("LOG_LEVEL"):
        overrides["log_level"] = os.environ["LOG_LEVEL"].upper()
    if os.getenv("LOG_JSON"):
        overrides["log_json"] = _as_bool(os.environ["LOG_JSON"])
    return replace(config, **overrides) if overrides else config
