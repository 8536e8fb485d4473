"""Runtime configuration.

Settings come from three layers, later ones winning: built-in defaults, an
optional YAML file, then ``PIPESYNC_*`` environment variables (plus the
Telegram credentials ``TELEGRAM_BOT_TOKEN`` and ``TELEGRAM_CHAT_ID``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from pipesync.models.tracked_item import MonitoredField, normalize_value
from pipesync.sync.differ import Transition

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Environment variable -> settings attribute
_ENV_VARS = {
    "PIPESYNC_SNAPSHOT_PATH": "snapshot_path",
    "PIPESYNC_STATE_PATH": "state_path",
    "PIPESYNC_POLL_INTERVAL_SEC": "poll_interval_sec",
    "PIPESYNC_MAX_RETRIES": "max_retries",
    "PIPESYNC_RETRY_BASE_DELAY": "retry_base_delay",
    "PIPESYNC_RETRY_MAX_DELAY": "retry_max_delay",
    "PIPESYNC_CALL_TIMEOUT": "call_timeout",
    "PIPESYNC_MAX_WORKERS": "max_workers",
    "PIPESYNC_SUMMARY_THRESHOLD": "summary_threshold",
    "PIPESYNC_RULES_PATH": "rules_path",
    "PIPESYNC_LOG_LEVEL": "log_level",
    "TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "TELEGRAM_CHAT_ID": "telegram_chat_id",
}


@dataclass
class Settings:
    snapshot_path: str = str(Path.home() / ".pipesync" / "snapshot.json")
    state_path: str = "pipeline.yaml"
    poll_interval_sec: int = 300
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    call_timeout: Optional[float] = 30.0
    max_workers: int = 1
    summary_threshold: Optional[int] = None
    rules_path: Optional[str] = None
    log_level: str = "INFO"
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    ignored_transitions: list[Transition] = field(default_factory=list)

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def validate(self) -> list[str]:
        """Return configuration issues; an empty list means valid."""
        issues = []
        if self.poll_interval_sec < 1:
            issues.append("poll_interval_sec must be >= 1")
        if self.max_retries < 1:
            issues.append("max_retries must be >= 1")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            issues.append("retry delays must be >= 0")
        if self.retry_max_delay < self.retry_base_delay:
            issues.append("retry_max_delay must be >= retry_base_delay")
        if self.call_timeout is not None and self.call_timeout <= 0:
            issues.append("call_timeout must be > 0")
        if self.max_workers < 1:
            issues.append("max_workers must be >= 1")
        if self.summary_threshold is not None and self.summary_threshold < 0:
            issues.append("summary_threshold must be >= 0")
        if self.log_level.upper() not in _LOG_LEVELS:
            issues.append(f"Invalid log_level: {self.log_level}")
        if bool(self.telegram_bot_token) != bool(self.telegram_chat_id):
            issues.append("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set together")
        return issues


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw YAML or environment value to the attribute's type."""
    if name == "ignored_transitions":
        return [_parse_transition(t) for t in raw or []]
    if raw is None or (isinstance(raw, str) and raw.strip().lower() in ("", "none", "null")):
        if name in ("call_timeout", "summary_threshold", "rules_path"):
            return None
    if name in ("poll_interval_sec", "max_retries", "max_workers", "summary_threshold"):
        return int(raw)
    if name in ("retry_base_delay", "retry_max_delay", "call_timeout"):
        return float(raw)
    return str(raw)


def _parse_transition(data: Mapping[str, Any]) -> Transition:
    if not isinstance(data, Mapping) or "field" not in data:
        raise ValueError(f"ignored_transitions entry needs a 'field' key: {data!r}")
    try:
        monitored = MonitoredField(data["field"])
    except ValueError:
        names = ", ".join(f.value for f in MonitoredField)
        raise ValueError(f"Unknown field in ignored_transitions: {data['field']!r} (expected one of {names})") from None
    return (
        monitored,
        normalize_value(data.get("from")),
        normalize_value(data.get("to")),
    )


def load_settings(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment."""
    environ = os.environ if environ is None else environ
    settings = Settings()
    known = {f.name for f in fields(Settings)}

    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings in {path}: {', '.join(unknown)}")
        for name, raw in data.items():
            setattr(settings, name, _coerce(name, raw))

    for env_name, attr in _ENV_VARS.items():
        if env_name in environ:
            setattr(settings, attr, _coerce(attr, environ[env_name]))

    return settings
