"""Prompt an LLM client for story content and normalize what comes back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, TypeVar

from .llm import LLMClient, LLMMessage, LLMRetryPolicy, call_with_retries
from .model import Character, Item, Project, Scene, generate_id
from .normalizer import ContentKind, NormalizedContent, extract_suggestions, normalize
from .settings import StudioSettings

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", Scene, Character, Item)

WRITER_PERSONA = (
    "You are an expert game writer creating engaging text-based adventure games. "
    "Keep the tone engaging and appropriate for interactive fiction."
)

_CONTENT_PROMPTS: Mapping[ContentKind, str] = {
    ContentKind.SCENE: (
        "Create a detailed game scene based on: {description}. "
        "Include title, description, and 3-4 player choices."
    ),
    ContentKind.CHARACTER: (
        "Create a game character based on: {description}. "
        "Include name, description, attributes, and backstory."
    ),
    ContentKind.ITEM: (
        "Create a game item based on: {description}. "
        "Include name, description, type, and special properties."
    ),
}


class AssistanceTopic(str, Enum):
    STORY = "story"
    BALANCE = "balance"
    BUG = "bug"


_ASSISTANCE_PROMPTS: Mapping[AssistanceTopic, str] = {
    AssistanceTopic.STORY: (
        "As a game narrative expert, help with this story development request.\n"
        "Context: {context}\nRequest: {request}\n"
        "Provide creative suggestions for plot development, character arcs, "
        "and narrative structure."
    ),
    AssistanceTopic.BALANCE: (
        "As a game balance expert, analyse this gameplay request.\n"
        "Context: {context}\nRequest: {request}\n"
        "Provide recommendations for difficulty curves and progression."
    ),
    AssistanceTopic.BUG: (
        "As a debugging expert, help identify and fix this story logic issue.\n"
        "Context: {context}\nRequest: {request}\n"
        "Provide a step-by-step approach and potential solutions."
    ),
}


@dataclass(frozen=True)
class Assistance:
    topic: AssistanceTopic
    content: str
    suggestions: tuple[str, ...]


def build_content_prompt(kind: ContentKind | str, description: str) -> str:
    resolved = ContentKind(kind)
    return _CONTENT_PROMPTS[resolved].format(description=description.strip())


def _entity_of(content: NormalizedContent, expected: type[EntityT]) -> EntityT:
    entity = content.entity
    if not isinstance(entity, expected):
        raise TypeError(
            f"Expected a generated {expected.__name__}, got {type(entity).__name__}"
        )
    return entity


class ContentGenerator:
    """Generate scenes, characters and items through an :class:`LLMClient`.

    Provider failures are retried according to ``retry_policy``; the last
    error propagates once attempts run out. Whatever text the provider returns
    is handed to :func:`storyforge.normalizer.normalize`, so callers always
    receive a schema-valid entity and should check ``ambiguous`` before
    trusting it.
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        retry_policy: LLMRetryPolicy | None = None,
        temperature: float | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._retry_policy = retry_policy or LLMRetryPolicy()
        self._temperature = temperature
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        client: LLMClient,
        settings: StudioSettings,
        *,
        temperature: float | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> "ContentGenerator":
        """Build a generator whose retries follow ``STORYFORGE_LLM_MAX_ATTEMPTS``."""

        return cls(
            client,
            retry_policy=LLMRetryPolicy(max_attempts=settings.llm_max_attempts),
            temperature=temperature,
            sleep=sleep,
        )

    def _complete(self, prompt: str) -> str:
        messages = [
            LLMMessage(role="system", content=WRITER_PERSONA),
            LLMMessage(role="user", content=prompt),
        ]
        response = call_with_retries(
            lambda: self._client.complete(messages, temperature=self._temperature),
            retry_policy=self._retry_policy,
            sleep=self._sleep,
        )
        return response.message.content

    def generate(self, kind: ContentKind | str, description: str) -> NormalizedContent:
        resolved = ContentKind(kind)
        prompt = build_content_prompt(resolved, description)
        logger.info("Requesting generated %s", resolved.value)
        return normalize(resolved, self._complete(prompt))

    def generate_scene(self, project: Project, description: str) -> NormalizedContent:
        """Generate a scene and append it to ``project`` under a fresh id."""

        content = self.generate(ContentKind.SCENE, description)
        scene = _entity_of(content, Scene)
        while project.get_scene(scene.id) is not None:
            scene = scene.model_copy(update={"id": generate_id("scene")})
        project.add_scene(scene)
        project.touch()
        return NormalizedContent(
            kind=content.kind, entity=scene, ambiguous=content.ambiguous, notes=content.notes
        )

    def generate_character(self, project: Project, description: str) -> NormalizedContent:
        content = self.generate(ContentKind.CHARACTER, description)
        project.add_character(_entity_of(content, Character))
        project.touch()
        return content

    def generate_item(self, project: Project, description: str) -> NormalizedContent:
        content = self.generate(ContentKind.ITEM, description)
        project.add_item(_entity_of(content, Item))
        project.touch()
        return content

    def assist(
        self, topic: AssistanceTopic | str, request: str, *, context: str = ""
    ) -> Assistance:
        """Ask for free-form authoring advice and pull out its suggestions."""

        resolved = AssistanceTopic(topic)
        prompt = _ASSISTANCE_PROMPTS[resolved].format(
            context=context.strip() or "Creating a new adventure game",
            request=request.strip(),
        )
        content = self._complete(prompt)
        return Assistance(
            topic=resolved, content=content, suggestions=tuple(extract_suggestions(content))
        )


__all__ = [
    "Assistance",
    "AssistanceTopic",
    "ContentGenerator",
    "WRITER_PERSONA",
    "build_content_prompt",
]
