"""Key/value persistence for projects and save games."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

from pydantic import ValidationError as SchemaError

from .errors import EntityNotFoundError, StorageError
from .exporters.json_format import project_payload
from .model import Project
from .state_engine import PlayerState

logger = logging.getLogger(__name__)

STORAGE_VERSION = "1.0.0"

_PROJECT_PREFIX = "project."
_SAVE_PREFIX = "save."


def wrap_envelope(data: Any) -> Dict[str, Any]:
    """Wrap ``data`` in the versioned envelope written by every store."""

    return {
        "version": STORAGE_VERSION,
        "updated": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def unwrap_envelope(key: str, envelope: object) -> Any:
    """Return the payload carried by ``envelope``.

    Envelopes written by another version are migrated by taking their
    ``data`` unchanged.

    Raises:
        StorageError: If ``envelope`` is not an envelope at all.
    """

    if not isinstance(envelope, Mapping) or "data" not in envelope:
        raise StorageError(key, "stored value is not a storage envelope")
    version = envelope.get("version")
    if version != STORAGE_VERSION:
        logger.info("Migrating '%s' from storage version %r to %s", key, version, STORAGE_VERSION)
    return envelope["data"]


class BlobStore(ABC):
    """Interface for stores that keep one JSON document per key."""

    @abstractmethod
    def load(self, key: str) -> Any | None:
        """Return the stored payload for ``key`` or ``None`` when absent.

        Raises:
            StorageError: If the stored value cannot be read or decoded.
        """

    @abstractmethod
    def save(self, key: str, payload: Any) -> None:
        """Persist ``payload`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if it exists."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return every stored key in sorted order."""


class InMemoryBlobStore(BlobStore):
    """Keep envelopes in local process memory."""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}

    def load(self, key: str) -> Any | None:
        validated = _validate_key(key)
        raw = self._blobs.get(validated)
        if raw is None:
            return None
        return unwrap_envelope(validated, json.loads(raw))

    def save(self, key: str, payload: Any) -> None:
        validated = _validate_key(key)
        try:
            self._blobs[validated] = json.dumps(wrap_envelope(payload))
        except (TypeError, ValueError) as exc:
            raise StorageError(validated, f"payload is not JSON serialisable: {exc}") from exc

    def delete(self, key: str) -> None:
        self._blobs.pop(_validate_key(key), None)

    def keys(self) -> List[str]:
        return sorted(self._blobs)


class FileBlobStore(BlobStore):
    """Persist each key as a pretty-printed JSON file in ``storage_dir``."""

    def __init__(self, storage_dir: Path, *, indent: int | None = 2) -> None:
        self.storage_dir = Path(storage_dir)
        self.indent = indent
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def load(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            envelope = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(key, f"could not read {path}: {exc}") from exc
        except (ValueError, RecursionError) as exc:
            # Covers JSONDecodeError and UnicodeDecodeError.
            raise StorageError(key, f"{path} is not valid UTF-8 JSON: {exc}") from exc
        return unwrap_envelope(key, envelope)

    def save(self, key: str, payload: Any) -> None:
        path = self._path(key)
        try:
            text = json.dumps(wrap_envelope(payload), indent=self.indent, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageError(key, f"payload is not JSON serialisable: {exc}") from exc
        temporary = path.with_name(path.name + ".tmp")
        try:
            temporary.write_text(text, encoding="utf-8")
            temporary.replace(path)
        except OSError as exc:
            raise StorageError(key, f"could not write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(key, f"could not delete {path}: {exc}") from exc

    def keys(self) -> List[str]:
        return sorted(
            path.name[: -len(".json")]
            for path in self.storage_dir.glob("*.json")
            if path.is_file()
        )

    def _path(self, key: str) -> Path:
        return self.storage_dir / f"{_validate_key(key)}.json"


def _validate_key(key: str) -> str:
    if not isinstance(key, str):
        raise TypeError("key must be a string")
    stripped = key.strip()
    if not stripped:
        raise ValueError("key must be a non-empty string")
    if "/" in stripped or "\\" in stripped or stripped.startswith("."):
        raise ValueError(f"key {key!r} must not contain path separators or start with '.'")
    return stripped


class ProjectRepository:
    """Store projects and their single save slot in a :class:`BlobStore`."""

    def __init__(self, store: BlobStore) -> None:
        self.store = store

    def save_project(self, project: Project) -> None:
        self.store.save(_PROJECT_PREFIX + project.id, project_payload(project))
        logger.debug("Saved project %s", project.id)

    def load_project(self, project_id: str) -> Project:
        """Return the stored project.

        Raises:
            EntityNotFoundError: If nothing is stored for ``project_id``.
            StorageError: If the stored document is not a valid project.
        """

        key = _PROJECT_PREFIX + project_id
        payload = self.store.load(key)
        if payload is None:
            raise EntityNotFoundError("Project", project_id)
        try:
            return Project.model_validate(payload)
        except SchemaError as exc:
            raise StorageError(key, f"stored project is invalid: {exc}") from exc

    def list_projects(self) -> List[str]:
        return [
            key[len(_PROJECT_PREFIX) :]
            for key in self.store.keys()
            if key.startswith(_PROJECT_PREFIX)
        ]

    def delete_project(self, project_id: str) -> None:
        """Remove the project together with its save slot."""

        self.store.delete(_PROJECT_PREFIX + project_id)
        self.store.delete(_SAVE_PREFIX + project_id)

    def save_game(self, project_id: str, state: PlayerState) -> None:
        """Overwrite the save slot of ``project_id`` with ``state``."""

        self.store.save(_SAVE_PREFIX + project_id, state.to_payload())

    def load_game(self, project_id: str) -> PlayerState | None:
        key = _SAVE_PREFIX + project_id
        payload = self.store.load(key)
        if payload is None:
            return None
        if not isinstance(payload, Mapping):
            raise StorageError(key, "stored save game is not an object")
        try:
            return PlayerState.from_payload(payload)
        except ValueError as exc:
            raise StorageError(key, str(exc)) from exc

    def clear_game(self, project_id: str) -> None:
        self.store.delete(_SAVE_PREFIX + project_id)


__all__ = [
    "STORAGE_VERSION",
    "BlobStore",
    "FileBlobStore",
    "InMemoryBlobStore",
    "ProjectRepository",
    "unwrap_envelope",
    "wrap_envelope",
]
