"""Best-effort conversion of free-form generator output into model entities.

Provider output is unpredictable, so this module never raises. Whatever it
cannot recognise is replaced by a documented default (``Untitled Scene``,
``Unnamed Character``, ``Unnamed Item``, zero attributes, ``misc`` item type,
choices that end the story) and the result is flagged ``ambiguous`` with a
note for each fallback. Callers review ambiguous content before trusting it.

A JSON object embedded anywhere in the text is preferred over line parsing.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import ValidationError as SchemaError

from .errors import AmbiguousContent
from .model import (
    TERMINAL_SCENE_ID,
    Character,
    CharacterAttributes,
    Choice,
    Item,
    ItemType,
    Scene,
    generate_id,
)

logger = logging.getLogger(__name__)

DEFAULT_SCENE_TITLE = "Untitled Scene"
DEFAULT_CHARACTER_NAME = "Unnamed Character"
DEFAULT_ITEM_NAME = "Unnamed Item"

Entity = Union[Scene, Character, Item]


class ContentKind(str, Enum):
    SCENE = "scene"
    CHARACTER = "character"
    ITEM = "item"


@dataclass(frozen=True)
class NormalizedContent:
    """A schema-valid entity plus a record of every default that was used."""

    kind: ContentKind
    entity: Entity
    ambiguous: bool = False
    notes: tuple[str, ...] = ()

    def require_unambiguous(self) -> Entity:
        """Return the entity, raising :class:`AmbiguousContent` if defaults were used."""

        if self.ambiguous:
            raise AmbiguousContent(self.kind.value, self.notes)
        return self.entity


_LABEL_PATTERN = re.compile(r"^\s*([A-Za-z][A-Za-z ]{0,24}?)\s*:\s*(.*)$")
_NUMBERED_PATTERN = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.*)$")
_CHOICE_LABEL_PATTERN = re.compile(r"^\s*(?:choice|option)\s*\d*\s*[:.)-]\s*(.*)$", re.IGNORECASE)
_ATTRIBUTE_PATTERN = re.compile(
    r"\b(health|strength|intelligence|agility)\b\s*[:=\-]?\s*(\d+)", re.IGNORECASE
)
_MARKDOWN_NOISE = re.compile(r"^[#>\s]+|[*_`]+")
_SECTION_HEADERS = {"choices", "options", "player choices", "attributes", "properties", "stats"}


def _clean(line: str) -> str:
    return _MARKDOWN_NOISE.sub("", line).strip()


def _labelled(line: str) -> tuple[str, str] | None:
    match = _LABEL_PATTERN.match(_clean(line))
    if match is None:
        return None
    return match.group(1).strip().lower(), match.group(2).strip()


def _extract_json_object(raw_text: str) -> Mapping[str, Any] | None:
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        decoded = json.loads(raw_text[start : end + 1])
    except (json.JSONDecodeError, RecursionError):
        return None
    return decoded if isinstance(decoded, Mapping) else None


def _text_field(payload: Mapping[str, Any], *names: str) -> str | None:
    for name in names:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _choice(text: str) -> Choice:
    return Choice(id=generate_id("choice"), text=text, next_scene_id=TERMINAL_SCENE_ID)


# ----------------------------------------------------------------------
# Scenes
# ----------------------------------------------------------------------


def _scene_from_json(payload: Mapping[str, Any], notes: list[str]) -> Scene:
    title = _text_field(payload, "title", "name", "scene")
    if title is None:
        notes.append("no title found; using default")
        title = DEFAULT_SCENE_TITLE
    description = _text_field(payload, "description", "text", "narration") or ""
    if not description:
        notes.append("no description found")

    choices: list[Choice] = []
    raw_choices = payload.get("choices")
    if isinstance(raw_choices, list):
        for entry in raw_choices:
            if isinstance(entry, str) and entry.strip():
                choices.append(_choice(entry.strip()))
            elif isinstance(entry, Mapping):
                text = _text_field(entry, "text", "description", "label")
                if text:
                    choices.append(_choice(text))
    if not choices:
        notes.append("no choices found")

    return Scene(id=generate_id("scene"), title=title, description=description, choices=choices)


def _scene_from_lines(lines: list[str], notes: list[str]) -> Scene:
    title: str | None = None
    description: list[str] = []
    choice_texts: list[str] = []

    for line in lines:
        choice_match = _CHOICE_LABEL_PATTERN.match(_clean(line)) or _NUMBERED_PATTERN.match(line)
        if choice_match and choice_match.group(1).strip():
            choice_texts.append(_clean(choice_match.group(1)))
            continue

        labelled = _labelled(line)
        if labelled is not None:
            label, value = labelled
            if label in ("title", "scene", "scene title") and value and title is None:
                title = value
                continue
            if label == "description" and value:
                description.append(value)
                continue
            if label in _SECTION_HEADERS and not value:
                continue

        cleaned = _clean(line)
        if cleaned.lower().rstrip(":") in _SECTION_HEADERS:
            continue
        if title is None and not description:
            title = cleaned
            continue
        description.append(cleaned)

    if not title:
        notes.append("no title found; using default")
        title = DEFAULT_SCENE_TITLE
    if not description:
        notes.append("no description found")
    if not choice_texts:
        notes.append("no choices found")

    return Scene(
        id=generate_id("scene"),
        title=title,
        description=" ".join(description),
        choices=[_choice(text) for text in choice_texts],
    )


# ----------------------------------------------------------------------
# Characters
# ----------------------------------------------------------------------


def _attributes(values: Mapping[str, int], notes: list[str]) -> CharacterAttributes:
    missing = [name for name in CharacterAttributes.model_fields if name not in values]
    if missing:
        notes.append("attributes defaulted to 0: " + ", ".join(missing))
    return CharacterAttributes(**{name: values.get(name, 0) for name in CharacterAttributes.model_fields})


def _character_from_json(payload: Mapping[str, Any], notes: list[str]) -> Character:
    name = _text_field(payload, "name", "character")
    if name is None:
        notes.append("no name found; using default")
        name = DEFAULT_CHARACTER_NAME

    values: dict[str, int] = {}
    raw_attributes = payload.get("attributes")
    source = raw_attributes if isinstance(raw_attributes, Mapping) else payload
    for field_name in CharacterAttributes.model_fields:
        value = source.get(field_name)
        if isinstance(value, int) and not isinstance(value, bool):
            values[field_name] = value

    return Character(
        id=generate_id("character"),
        name=name,
        description=_text_field(payload, "description") or "",
        attributes=_attributes(values, notes),
        backstory=_text_field(payload, "backstory", "history") or "",
    )


def _character_from_lines(lines: list[str], notes: list[str]) -> Character:
    name: str | None = None
    description: list[str] = []
    backstory: list[str] = []
    values: dict[str, int] = {}
    in_backstory = False

    for line in lines:
        found = _ATTRIBUTE_PATTERN.findall(line)
        if found:
            for attribute, number in found:
                values.setdefault(attribute.lower(), int(number))
            continue

        labelled = _labelled(line)
        if labelled is not None:
            label, value = labelled
            if label in ("name", "character") and value and name is None:
                name = value
                continue
            if label == "backstory":
                in_backstory = True
                if value:
                    backstory.append(value)
                continue
            if label == "description":
                in_backstory = False
                if value:
                    description.append(value)
                continue
            if label in _SECTION_HEADERS and not value:
                continue

        cleaned = _clean(line)
        if name is None and not description:
            name = cleaned
        elif in_backstory:
            backstory.append(cleaned)
        else:
            description.append(cleaned)

    if not name:
        notes.append("no name found; using default")
        name = DEFAULT_CHARACTER_NAME

    return Character(
        id=generate_id("character"),
        name=name,
        description=" ".join(description),
        attributes=_attributes(values, notes),
        backstory=" ".join(backstory),
    )


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------


def _item_type(value: str | None, notes: list[str]) -> ItemType:
    if value:
        candidate = value.strip().lower()
        for item_type in ItemType:
            if candidate == item_type.value or candidate.startswith(item_type.value):
                return item_type
    notes.append("item type not recognised; using misc")
    return ItemType.MISC


def _item_from_json(payload: Mapping[str, Any], notes: list[str]) -> Item:
    name = _text_field(payload, "name", "item")
    if name is None:
        notes.append("no name found; using default")
        name = DEFAULT_ITEM_NAME
    properties = payload.get("properties")
    return Item(
        id=generate_id("item"),
        name=name,
        description=_text_field(payload, "description") or "",
        item_type=_item_type(_text_field(payload, "type", "itemType", "category"), notes),
        properties=dict(properties) if isinstance(properties, Mapping) else {},
    )


def _item_from_lines(lines: list[str], notes: list[str]) -> Item:
    name: str | None = None
    type_text: str | None = None
    description: list[str] = []
    properties: dict[str, str] = {}

    for line in lines:
        bullet = _NUMBERED_PATTERN.match(line)
        labelled = _labelled(bullet.group(1) if bullet else line)
        if labelled is not None:
            label, value = labelled
            if label in ("name", "item") and value and name is None:
                name = value
                continue
            if label == "type" and value:
                type_text = value
                continue
            if label == "description" and value:
                description.append(value)
                continue
            if label in _SECTION_HEADERS and not value:
                continue
            if bullet and value:
                properties[label] = value
                continue

        cleaned = _clean(line)
        if name is None and not description:
            name = cleaned
        else:
            description.append(cleaned)

    if not name:
        notes.append("no name found; using default")
        name = DEFAULT_ITEM_NAME

    return Item(
        id=generate_id("item"),
        name=name,
        description=" ".join(description),
        item_type=_item_type(type_text, notes),
        properties=properties,
    )


_JSON_PARSERS = {
    ContentKind.SCENE: _scene_from_json,
    ContentKind.CHARACTER: _character_from_json,
    ContentKind.ITEM: _item_from_json,
}

_LINE_PARSERS = {
    ContentKind.SCENE: _scene_from_lines,
    ContentKind.CHARACTER: _character_from_lines,
    ContentKind.ITEM: _item_from_lines,
}

_DEFAULT_FACTORIES = {
    ContentKind.SCENE: lambda: Scene(id=generate_id("scene"), title=DEFAULT_SCENE_TITLE),
    ContentKind.CHARACTER: lambda: Character(
        id=generate_id("character"), name=DEFAULT_CHARACTER_NAME
    ),
    ContentKind.ITEM: lambda: Item(id=generate_id("item"), name=DEFAULT_ITEM_NAME),
}


def _resolve_kind(kind: ContentKind | str, notes: list[str]) -> ContentKind:
    if isinstance(kind, ContentKind):
        return kind
    try:
        return ContentKind(str(kind).strip().lower())
    except ValueError:
        notes.append(f"unknown content kind {kind!r}; treated as scene")
        return ContentKind.SCENE


def normalize(kind: ContentKind | str, raw_text: str | None) -> NormalizedContent:
    """Turn ``raw_text`` into a best-effort entity of ``kind``. Never raises."""

    notes: list[str] = []
    resolved = _resolve_kind(kind, notes)
    text = raw_text if isinstance(raw_text, str) else ""
    lines = [line for line in text.splitlines() if line.strip()]

    entity: Entity
    if not lines:
        notes.append("no content to parse; using defaults")
        entity = _DEFAULT_FACTORIES[resolved]()
    else:
        try:
            payload = _extract_json_object(text)
            if payload is not None:
                entity = _JSON_PARSERS[resolved](payload, notes)
            else:
                entity = _LINE_PARSERS[resolved](lines, notes)
        except (SchemaError, ValueError, TypeError) as exc:
            notes.append(f"could not build {resolved.value}: {exc}")
            entity = _DEFAULT_FACTORIES[resolved]()

    ambiguous = bool(notes)
    if ambiguous:
        logger.info("Normalized %s with fallbacks: %s", resolved.value, "; ".join(notes))
    return NormalizedContent(kind=resolved, entity=entity, ambiguous=ambiguous, notes=tuple(notes))


def extract_suggestions(content: str, *, limit: int = 5) -> list[str]:
    """Return up to ``limit`` bulleted or numbered lines from ``content``."""

    suggestions: list[str] = []
    for line in content.splitlines():
        match = _NUMBERED_PATTERN.match(line)
        if match and match.group(1).strip():
            suggestions.append(match.group(1).strip())
        if len(suggestions) >= limit:
            break
    return suggestions


__all__ = [
    "DEFAULT_CHARACTER_NAME",
    "DEFAULT_ITEM_NAME",
    "DEFAULT_SCENE_TITLE",
    "ContentKind",
    "NormalizedContent",
    "extract_suggestions",
    "normalize",
]
