"""Authoring core for branching text adventures."""

from .errors import (
    AmbiguousContent,
    DuplicateEntityError,
    EntityNotFoundError,
    StorageError,
    StoryForgeError,
    TransitionRejectedError,
    UnsupportedExportFormat,
    ValidationError,
)
from .model import (
    TERMINAL_SCENE_ID,
    Character,
    CharacterAttributes,
    Choice,
    Condition,
    Consequence,
    GameSettings,
    Item,
    ItemType,
    Kind,
    Operation,
    Operator,
    Project,
    Requirement,
    Scene,
    Theme,
    new_project,
)
from .validation import ValidationIssue, ValidationResult, validate
from .state_engine import (
    ChoiceAvailability,
    PlayerState,
    StateEngine,
    TransitionRejected,
    TransitionResult,
    list_available_choices,
    reset,
    select_choice,
)
from .playtest import PlaytestSession
from .exporters import ExportFormat, export_project
from .normalizer import ContentKind, NormalizedContent, extract_suggestions, normalize
from .persistence import FileBlobStore, InMemoryBlobStore, ProjectRepository
from .llm import LLMClient, LLMClientError, LLMMessage, LLMResponse, LLMRetryPolicy
from .generation import ContentGenerator

__all__ = [
    "TERMINAL_SCENE_ID",
    "AmbiguousContent",
    "Character",
    "CharacterAttributes",
    "Choice",
    "ChoiceAvailability",
    "Condition",
    "Consequence",
    "ContentGenerator",
    "ContentKind",
    "DuplicateEntityError",
    "EntityNotFoundError",
    "ExportFormat",
    "FileBlobStore",
    "GameSettings",
    "InMemoryBlobStore",
    "Item",
    "ItemType",
    "Kind",
    "LLMClient",
    "LLMClientError",
    "LLMMessage",
    "LLMResponse",
    "LLMRetryPolicy",
    "NormalizedContent",
    "Operation",
    "Operator",
    "PlayerState",
    "PlaytestSession",
    "Project",
    "ProjectRepository",
    "Requirement",
    "Scene",
    "StateEngine",
    "StorageError",
    "StoryForgeError",
    "Theme",
    "TransitionRejected",
    "TransitionRejectedError",
    "TransitionResult",
    "UnsupportedExportFormat",
    "ValidationError",
    "ValidationIssue",
    "ValidationResult",
    "export_project",
    "extract_suggestions",
    "list_available_choices",
    "new_project",
    "normalize",
    "reset",
    "select_choice",
    "validate",
]
