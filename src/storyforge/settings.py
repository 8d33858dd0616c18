"""Environment-driven configuration for the CLI and HTTP shell."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from .exporters import ExportFormat


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default
    return value.strip() or default


def _parse_int(value: str | None, *, name: str, default: int, minimum: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    return parsed


@dataclass(frozen=True)
class StudioSettings:
    """Runtime settings for storyforge tools.

    Values are read from ``STORYFORGE_*`` environment variables. Paths are
    expanded to support ``~`` prefixes and empty strings are treated as if the
    variable was unset. Without a storage directory projects are kept in
    memory only.
    """

    storage_dir: Path | None = None
    export_format: ExportFormat = ExportFormat.JSON
    json_indent: int = 2
    log_level: str = "INFO"
    llm_max_attempts: int = 3

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StudioSettings":
        source = environ if environ is not None else os.environ

        format_name = _normalise_string(source.get("STORYFORGE_EXPORT_FORMAT"), default="json")
        try:
            export_format = ExportFormat(format_name.lower())
        except ValueError as exc:
            options = ", ".join(option.value for option in ExportFormat)
            raise ValueError(f"STORYFORGE_EXPORT_FORMAT must be one of: {options}.") from exc

        log_level = _normalise_string(source.get("STORYFORGE_LOG_LEVEL"), default="INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"STORYFORGE_LOG_LEVEL {log_level!r} is not a logging level.")

        return cls(
            storage_dir=_normalise_path(source.get("STORYFORGE_STORAGE_DIR")),
            export_format=export_format,
            json_indent=_parse_int(
                source.get("STORYFORGE_JSON_INDENT"),
                name="STORYFORGE_JSON_INDENT",
                default=2,
                minimum=0,
            ),
            log_level=log_level,
            llm_max_attempts=_parse_int(
                source.get("STORYFORGE_LLM_MAX_ATTEMPTS"),
                name="STORYFORGE_LLM_MAX_ATTEMPTS",
                default=3,
                minimum=1,
            ),
        )


__all__ = ["StudioSettings"]
