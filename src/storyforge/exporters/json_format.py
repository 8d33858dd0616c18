"""Lossless JSON serialisation of a project."""

from __future__ import annotations

import json
from typing import Any

from ..model import Project


def project_payload(project: Project) -> dict[str, Any]:
    """Return the JSON-ready mapping for ``project`` using camelCase keys."""

    return project.model_dump(mode="json", by_alias=True)


def export_json(project: Project, *, indent: int | None = 2) -> str:
    """Serialise the whole project tree; nothing is dropped or summarised."""

    return json.dumps(project_payload(project), indent=indent, ensure_ascii=False)


def parse_project_json(text: str | bytes) -> Project:
    """Rebuild a :class:`Project` from :func:`export_json` output.

    Raises:
        pydantic.ValidationError: If the document does not match the schema.
    """

    return Project.model_validate_json(text)


__all__ = ["export_json", "parse_project_json", "project_payload"]
