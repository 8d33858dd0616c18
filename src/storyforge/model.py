"""Narrative data model: projects, scenes, choices and their gating rules.

Every entity is a pydantic model serialised with camelCase aliases so the
JSON produced by :func:`storyforge.exporters.export_project` matches the
schema consumed by the editor. Field names are accepted as well when
building models from Python code.

Editing helpers on :class:`Project` replace whole entities rather than
patching them in place. None of them repairs references: removing a scene
leaves any choice pointing at it dangling until validation reports it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import DuplicateEntityError, EntityNotFoundError

TERMINAL_SCENE_ID = "__end__"
"""Sentinel ``nextSceneId`` marking a choice that ends the story."""

ScalarValue = Union[StrictBool, StrictInt, StrictFloat]
VariableValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class Kind(str, Enum):
    """Closed set of variable kinds a condition or consequence can address."""

    ITEM = "item"
    ATTRIBUTE = "attribute"
    FLAG = "flag"


class Operator(str, Enum):
    """Comparison operators available to requirements."""

    GT = ">"
    LT = "<"
    EQ = "="
    GE = ">="
    LE = "<="


class Operation(str, Enum):
    """Mutations a consequence can apply to the variable store."""

    ADD = "add"
    REMOVE = "remove"
    SET = "set"


class ItemType(str, Enum):
    WEAPON = "weapon"
    ARMOR = "armor"
    CONSUMABLE = "consumable"
    KEY = "key"
    MISC = "misc"


class Theme(str, Enum):
    DARK = "dark"
    LIGHT = "light"
    FANTASY = "fantasy"
    SCIFI = "scifi"


class Difficulty(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Return a new identifier such as ``scene_3f2a...``."""

    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _require_text(value: str, *, field_name: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must be a non-empty string")
    return stripped


class _Entity(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class Condition(_Entity):
    """A predicate over player state gating a choice."""

    kind: Kind
    key: str
    operator: Operator = Operator.GE
    value: ScalarValue

    @model_validator(mode="before")
    @classmethod
    def _default_flag_operator(cls, data: Any) -> Any:
        # An omitted operator means ">=" for counts but equality for flags.
        if isinstance(data, dict) and "operator" not in data:
            if data.get("kind") in (Kind.FLAG, Kind.FLAG.value):
                return {**data, "operator": Operator.EQ}
        return data

    @field_validator("key")
    @classmethod
    def _validate_key(cls, value: str) -> str:
        return _require_text(value, field_name="condition key")


Requirement = Condition


class Consequence(_Entity):
    """A mutation of player state applied when a choice is selected."""

    kind: Kind
    key: str
    value: ScalarValue
    operation: Operation = Operation.SET

    @field_validator("key")
    @classmethod
    def _validate_key(cls, value: str) -> str:
        return _require_text(value, field_name="consequence key")


class Choice(_Entity):
    """A player-selectable action leading to another scene."""

    id: str
    text: str
    next_scene_id: str = TERMINAL_SCENE_ID
    requirements: list[Condition] = Field(default_factory=list)
    consequences: list[Consequence] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _require_text(value, field_name="choice id")

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` when the choice ends interactive traversal."""

        return self.next_scene_id == TERMINAL_SCENE_ID


class Scene(_Entity):
    """A narrative node with descriptive text and ordered choices."""

    id: str
    title: str
    description: str = ""
    image: str | None = None
    choices: list[Choice] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        return _require_text(value, field_name="scene id")

    def get_choice(self, choice_id: str) -> Choice | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class CharacterAttributes(_Entity):
    health: int = 0
    strength: int = 0
    intelligence: int = 0
    agility: int = 0


class Character(_Entity):
    id: str
    name: str
    description: str = ""
    attributes: CharacterAttributes = Field(default_factory=CharacterAttributes)
    portrait: str | None = None
    backstory: str = ""


class Item(_Entity):
    id: str
    name: str
    description: str = ""
    item_type: ItemType = Field(default=ItemType.MISC, alias="type")
    image: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)


class GameSettings(_Entity):
    theme: Theme = Theme.DARK
    difficulty: Difficulty = Difficulty.NORMAL
    enable_saving: bool = True
    enable_music: bool = False
    enable_voice: bool = False


class Project(_Entity):
    """Root of the narrative graph; owns every contained entity."""

    id: str
    name: str
    description: str = ""
    genre: str = ""
    created: datetime = Field(default_factory=_utcnow)
    updated: datetime = Field(default_factory=_utcnow)
    scenes: list[Scene] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    items: list[Item] = Field(default_factory=list)
    variables: dict[str, VariableValue] = Field(default_factory=dict)
    settings: GameSettings = Field(default_factory=GameSettings)
    start_scene_id: str | None = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_scene(self, scene_id: str) -> Scene | None:
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def scene_ids(self) -> list[str]:
        return [scene.id for scene in self.scenes]

    def start_scene(self) -> Scene | None:
        """Return the designated start scene.

        The explicit ``start_scene_id`` wins when it resolves; otherwise the
        first scene in the list is used. ``None`` means the project is empty
        or the explicit start points nowhere.
        """

        if self.start_scene_id is not None:
            return self.get_scene(self.start_scene_id)
        return self.scenes[0] if self.scenes else None

    def find_choice(self, choice_id: str) -> tuple[Scene, Choice] | None:
        """Return the first scene owning ``choice_id`` and the choice itself."""

        for scene in self.scenes:
            choice = scene.get_choice(choice_id)
            if choice is not None:
                return scene, choice
        return None

    # ------------------------------------------------------------------
    # Editing operations
    # ------------------------------------------------------------------

    def touch(self) -> None:
        self.updated = _utcnow()

    def add_scene(self, scene: Scene) -> Scene:
        if self.get_scene(scene.id) is not None:
            raise DuplicateEntityError("Scene", scene.id)
        self.scenes = [*self.scenes, scene]
        return scene

    def replace_scene(self, scene: Scene) -> Scene:
        index = self._scene_index(scene.id)
        scenes = list(self.scenes)
        scenes[index] = scene
        self.scenes = scenes
        return scene

    def remove_scene(self, scene_id: str) -> Scene:
        index = self._scene_index(scene_id)
        scenes = list(self.scenes)
        removed = scenes.pop(index)
        self.scenes = scenes
        return removed

    def add_choice(self, scene_id: str, choice: Choice) -> Scene:
        scene = self._require_scene(scene_id)
        if scene.get_choice(choice.id) is not None:
            raise DuplicateEntityError("Choice", choice.id)
        updated = scene.model_copy(update={"choices": [*scene.choices, choice]})
        return self.replace_scene(updated)

    def replace_choice(self, scene_id: str, choice: Choice) -> Scene:
        scene = self._require_scene(scene_id)
        if scene.get_choice(choice.id) is None:
            raise EntityNotFoundError("Choice", choice.id)
        choices = [choice if existing.id == choice.id else existing for existing in scene.choices]
        return self.replace_scene(scene.model_copy(update={"choices": choices}))

    def remove_choice(self, scene_id: str, choice_id: str) -> Scene:
        scene = self._require_scene(scene_id)
        if scene.get_choice(choice_id) is None:
            raise EntityNotFoundError("Choice", choice_id)
        choices = [existing for existing in scene.choices if existing.id != choice_id]
        return self.replace_scene(scene.model_copy(update={"choices": choices}))

    def add_character(self, character: Character) -> Character:
        if any(existing.id == character.id for existing in self.characters):
            raise DuplicateEntityError("Character", character.id)
        self.characters = [*self.characters, character]
        return character

    def replace_character(self, character: Character) -> Character:
        self.characters = _replace_by_id(self.characters, character, "Character")
        return character

    def remove_character(self, character_id: str) -> None:
        self.characters = _remove_by_id(self.characters, character_id, "Character")

    def add_item(self, item: Item) -> Item:
        if any(existing.id == item.id for existing in self.items):
            raise DuplicateEntityError("Item", item.id)
        self.items = [*self.items, item]
        return item

    def replace_item(self, item: Item) -> Item:
        self.items = _replace_by_id(self.items, item, "Item")
        return item

    def remove_item(self, item_id: str) -> None:
        self.items = _remove_by_id(self.items, item_id, "Item")

    def set_variable(self, key: str, value: bool | int | float | str) -> None:
        key = _require_text(key, field_name="variable key")
        variables = dict(self.variables)
        variables[key] = value
        self.variables = variables

    def remove_variable(self, key: str) -> None:
        if key not in self.variables:
            raise EntityNotFoundError("Variable", key)
        variables = dict(self.variables)
        del variables[key]
        self.variables = variables

    def _scene_index(self, scene_id: str) -> int:
        for index, scene in enumerate(self.scenes):
            if scene.id == scene_id:
                return index
        raise EntityNotFoundError("Scene", scene_id)

    def _require_scene(self, scene_id: str) -> Scene:
        return self.scenes[self._scene_index(scene_id)]


def _replace_by_id(entities: list[Any], replacement: Any, label: str) -> list[Any]:
    for index, existing in enumerate(entities):
        if existing.id == replacement.id:
            updated = list(entities)
            updated[index] = replacement
            return updated
    raise EntityNotFoundError(label, replacement.id)


def _remove_by_id(entities: list[Any], identifier: str, label: str) -> list[Any]:
    remaining = [existing for existing in entities if existing.id != identifier]
    if len(remaining) == len(entities):
        raise EntityNotFoundError(label, identifier)
    return remaining


def new_project(
    name: str,
    *,
    description: str = "",
    genre: str = "",
    scenes: list[Scene] | None = None,
) -> Project:
    """Create an empty project with a generated identifier."""

    return Project(
        id=generate_id("project"),
        name=_require_text(name, field_name="project name"),
        description=description,
        genre=genre,
        scenes=list(scenes or []),
    )


__all__ = [
    "TERMINAL_SCENE_ID",
    "Character",
    "CharacterAttributes",
    "Choice",
    "Condition",
    "Consequence",
    "Difficulty",
    "GameSettings",
    "Item",
    "ItemType",
    "Kind",
    "Operation",
    "Operator",
    "Project",
    "Requirement",
    "Scene",
    "ScalarValue",
    "Theme",
    "VariableValue",
    "generate_id",
    "new_project",
]
