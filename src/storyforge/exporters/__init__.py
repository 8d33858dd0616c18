"""Export compiler turning a project into JSON, HTML or Twine artifacts."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Mapping

from ..errors import UnsupportedExportFormat
from ..model import Project
from .html_runtime import export_html
from .json_format import export_json, parse_project_json, project_payload
from .twine_format import (
    TwineLink,
    TwinePassage,
    escape_twine,
    export_twine,
    parse_twine,
    unescape_twine,
)

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    """Artifact formats the compiler can produce."""

    JSON = "json"
    HTML = "html"
    TWINE = "twine"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def file_extension(self) -> str:
        return _FILE_EXTENSIONS[self]


_MEDIA_TYPES: Mapping[ExportFormat, str] = {
    ExportFormat.JSON: "application/json",
    ExportFormat.HTML: "text/html",
    ExportFormat.TWINE: "text/plain",
}

_FILE_EXTENSIONS: Mapping[ExportFormat, str] = {
    ExportFormat.JSON: ".json",
    ExportFormat.HTML: ".html",
    ExportFormat.TWINE: ".twee",
}

_EXPORTERS: Mapping[ExportFormat, Callable[[Project], str]] = {
    ExportFormat.JSON: export_json,
    ExportFormat.HTML: export_html,
    ExportFormat.TWINE: export_twine,
}


def resolve_format(value: ExportFormat | str) -> ExportFormat:
    """Return the :class:`ExportFormat` named by ``value``.

    Raises:
        UnsupportedExportFormat: If ``value`` names no known format.
    """

    if isinstance(value, ExportFormat):
        return value
    if isinstance(value, str):
        try:
            return ExportFormat(value.strip().lower())
        except ValueError:
            pass
    raise UnsupportedExportFormat(value, [option.value for option in ExportFormat])


def export_project(project: Project, format: ExportFormat | str) -> str:
    """Render ``project`` in ``format`` and return the artifact text.

    The format is resolved before any work is done, so an unknown format
    never yields partial output. HTML and Twine refuse structurally invalid
    projects with :class:`~storyforge.errors.ValidationError`; JSON always
    succeeds because it doubles as the save format for unfinished graphs.
    """

    target = resolve_format(format)
    artifact = _EXPORTERS[target](project)
    logger.info(
        "Exported project %s as %s (%d characters)", project.id, target.value, len(artifact)
    )
    return artifact


__all__ = [
    "ExportFormat",
    "TwineLink",
    "TwinePassage",
    "escape_twine",
    "export_html",
    "export_json",
    "export_project",
    "export_twine",
    "parse_project_json",
    "parse_twine",
    "project_payload",
    "resolve_format",
    "unescape_twine",
]
