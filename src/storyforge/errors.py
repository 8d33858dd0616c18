"""Exception hierarchy shared by the authoring core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from .validation import ValidationIssue


class StoryForgeError(Exception):
    """Base class for errors raised by :mod:`storyforge`."""


class ValidationError(StoryForgeError):
    """Raised when a project has structural problems that block an operation.

    The offending issues are kept on :attr:`issues` so callers can present
    every violation at once instead of only the first one.
    """

    def __init__(self, issues: Iterable["ValidationIssue"], message: str | None = None):
        self.issues = tuple(issues)
        if message is None:
            if self.issues:
                summary = "; ".join(issue.message for issue in self.issues[:3])
                extra = len(self.issues) - 3
                if extra > 0:
                    summary += f" (and {extra} more)"
                message = f"Project failed validation: {summary}"
            else:
                message = "Project failed validation."
        super().__init__(message)


class DuplicateEntityError(StoryForgeError, ValueError):
    """Raised when an entity is added with an identifier that already exists."""

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} '{identifier}' already exists.")
        self.entity = entity
        self.identifier = identifier


class EntityNotFoundError(StoryForgeError, KeyError):
    """Raised when an editing operation targets an unknown entity."""

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} '{identifier}' does not exist.")
        self.entity = entity
        self.identifier = identifier

    def __str__(self) -> str:
        return str(self.args[0])


class TransitionRejectedError(StoryForgeError):
    """Raised by :meth:`StateEngine.replay` when a recorded choice is refused."""

    def __init__(self, choice_id: str, reason: str) -> None:
        super().__init__(f"Choice '{choice_id}' was rejected: {reason}")
        self.choice_id = choice_id
        self.reason = reason


class UnsupportedExportFormat(StoryForgeError, ValueError):
    """Raised when an export is requested for an unknown target format."""

    def __init__(self, requested: object, supported: Iterable[str]) -> None:
        options = ", ".join(supported)
        super().__init__(
            f"Unsupported export format {requested!r}; expected one of: {options}."
        )
        self.requested = requested


class AmbiguousContent(StoryForgeError):
    """Signals that normalized AI output fell back to documented defaults."""

    def __init__(self, kind: str, notes: Iterable[str]) -> None:
        self.kind = kind
        self.notes = tuple(notes)
        detail = "; ".join(self.notes) or "no details"
        super().__init__(f"Generated {kind} content was ambiguous: {detail}")


class StorageError(StoryForgeError):
    """Raised when the persistence adapter cannot read or write a blob."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"Storage operation for '{key}' failed: {message}")
        self.key = key


__all__ = [
    "AmbiguousContent",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "StorageError",
    "StoryForgeError",
    "TransitionRejectedError",
    "UnsupportedExportFormat",
    "ValidationError",
]
