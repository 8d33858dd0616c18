"""Pure evaluation of player state against a project's branching rules.

The engine never mutates anything it is given. Every transition builds a
fresh :class:`PlayerState`; a rejected transition hands back the exact state
object it received. Requirement evaluation and consequence application are
dispatched per :class:`~storyforge.model.Kind` through small function
tables, one entry per variant.
"""

from __future__ import annotations

import logging
import operator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Literal, Mapping, MutableMapping, Union

from .errors import TransitionRejectedError, ValidationError
from .model import Choice, Condition, Consequence, Kind, Operation, Operator, Project, Scene
from .validation import (
    ValidationIssue,
    describe_condition_problem,
    describe_consequence_problem,
)

logger = logging.getLogger(__name__)

StateValue = Union[bool, int, float]
SessionStatus = Literal["active", "ended"]


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_VALUE_CHECKS: Mapping[Kind, Callable[[object], bool]] = {
    Kind.ITEM: lambda value: isinstance(value, int) and _is_number(value) and value >= 0,
    Kind.ATTRIBUTE: _is_number,
    Kind.FLAG: lambda value: isinstance(value, bool),
}


@dataclass(frozen=True)
class PlayerState:
    """Immutable snapshot of a playthrough.

    ``variables`` is the flat variable store. ``kinds`` records which kind
    each key was first written as, so that a key holding a flag can never
    be read back as an inventory count.
    """

    current_scene_id: str
    variables: Mapping[str, StateValue] = field(default_factory=dict)
    kinds: Mapping[str, Kind] = field(default_factory=dict)
    status: SessionStatus = "active"
    history: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", _frozen(self.variables))
        object.__setattr__(self, "kinds", _frozen(self.kinds))
        object.__setattr__(self, "history", tuple(self.history))

    @property
    def ended(self) -> bool:
        return self.status == "ended"

    def attribute(self, key: str) -> int | float:
        value = self.variables.get(key, 0)
        return value if self.kinds.get(key, Kind.ATTRIBUTE) is Kind.ATTRIBUTE else 0

    def item_count(self, key: str) -> int:
        value = self.variables.get(key, 0)
        return int(value) if self.kinds.get(key, Kind.ITEM) is Kind.ITEM else 0

    def flag(self, key: str) -> bool:
        value = self.variables.get(key, False)
        return bool(value) if self.kinds.get(key, Kind.FLAG) is Kind.FLAG else False

    def inventory(self) -> dict[str, int]:
        """Return held items with a positive count."""

        return {
            key: int(value)
            for key, value in sorted(self.variables.items())
            if self.kinds.get(key) is Kind.ITEM and value > 0
        }

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation of the state."""

        return {
            "currentSceneId": self.current_scene_id,
            "variables": dict(self.variables),
            "kinds": {key: kind.value for key, kind in self.kinds.items()},
            "status": self.status,
            "history": list(self.history),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PlayerState":
        scene_id = payload.get("currentSceneId")
        if not isinstance(scene_id, str) or not scene_id:
            raise ValueError("Invalid state payload: missing currentSceneId")

        variables = payload.get("variables", {})
        kinds = payload.get("kinds", {})
        if not isinstance(variables, Mapping) or not isinstance(kinds, Mapping):
            raise ValueError("Invalid state payload: variables and kinds must be objects")
        if set(variables) != set(kinds):
            raise ValueError("Invalid state payload: every variable needs a kind")

        resolved_kinds = {key: Kind(value) for key, value in kinds.items()}
        for key, kind in resolved_kinds.items():
            if not _VALUE_CHECKS[kind](variables[key]):
                raise ValueError(
                    f"Invalid state payload: {variables[key]!r} is not a valid "
                    f"{kind.value} value for '{key}'"
                )

        status = payload.get("status", "active")
        if status not in ("active", "ended"):
            raise ValueError(f"Invalid state payload: unknown status {status!r}")

        history = payload.get("history", [])
        if isinstance(history, (str, bytes)) or not isinstance(history, Iterable):
            raise ValueError("Invalid state payload: history must be a list")

        return cls(
            current_scene_id=scene_id,
            variables=dict(variables),
            kinds=resolved_kinds,
            status=status,
            history=tuple(str(entry) for entry in history),
        )


@dataclass(frozen=True)
class ChoiceAvailability:
    """Whether a choice can currently be selected, and why not."""

    choice: Choice
    index: int
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class TransitionResult:
    """A successful transition."""

    state: PlayerState
    choice: Choice

    accepted = True

    @property
    def ended(self) -> bool:
        return self.state.ended


@dataclass(frozen=True)
class TransitionRejected:
    """A refused transition; ``state`` is the unchanged input state."""

    choice_id: str
    reason: str
    state: PlayerState

    accepted = False


Transition = Union[TransitionResult, TransitionRejected]


# ----------------------------------------------------------------------
# Requirement evaluation
# ----------------------------------------------------------------------

_COMPARATORS: Mapping[Operator, Callable[[Any, Any], bool]] = {
    Operator.GT: operator.gt,
    Operator.LT: operator.lt,
    Operator.EQ: operator.eq,
    Operator.GE: operator.ge,
    Operator.LE: operator.le,
}


def _kind_conflict(state: PlayerState, key: str, kind: Kind) -> str | None:
    bound = state.kinds.get(key)
    if bound is not None and bound is not kind:
        return f"'{key}' holds a {bound.value}, not a {kind.value}"
    return None


def _compare_count(condition: Condition, current: int | float) -> str | None:
    if _COMPARATORS[condition.operator](current, condition.value):
        return None
    return (
        f"requires {condition.kind.value} '{condition.key}' "
        f"{condition.operator.value} {condition.value} (have {current})"
    )


def _evaluate_item(condition: Condition, state: PlayerState) -> str | None:
    return _compare_count(condition, state.item_count(condition.key))


def _evaluate_attribute(condition: Condition, state: PlayerState) -> str | None:
    return _compare_count(condition, state.attribute(condition.key))


def _evaluate_flag(condition: Condition, state: PlayerState) -> str | None:
    if state.flag(condition.key) == condition.value:
        return None
    expected = "set" if condition.value else "unset"
    return f"requires flag '{condition.key}' to be {expected}"


_EVALUATORS: Mapping[Kind, Callable[[Condition, PlayerState], str | None]] = {
    Kind.ITEM: _evaluate_item,
    Kind.ATTRIBUTE: _evaluate_attribute,
    Kind.FLAG: _evaluate_flag,
}


def evaluate_requirement(condition: Condition, state: PlayerState) -> str | None:
    """Return ``None`` when ``condition`` holds, otherwise the reason it fails."""

    problem = describe_condition_problem(condition)
    if problem is not None:
        return problem
    conflict = _kind_conflict(state, condition.key, condition.kind)
    if conflict is not None:
        return conflict
    return _EVALUATORS[condition.kind](condition, state)


def evaluate_requirements(conditions: Iterable[Condition], state: PlayerState) -> str | None:
    """Return the first failing reason among ``conditions``, if any."""

    for condition in conditions:
        reason = evaluate_requirement(condition, state)
        if reason is not None:
            return reason
    return None


# ----------------------------------------------------------------------
# Consequence application
# ----------------------------------------------------------------------

def _apply_count(
    consequence: Consequence,
    current: int | float,
) -> int | float:
    value = consequence.value
    if consequence.operation is Operation.SET:
        return value
    if consequence.operation is Operation.ADD:
        return current + value
    return max(0, current - value)


def _apply_item(consequence: Consequence, variables: MutableMapping[str, StateValue]) -> None:
    current = variables.get(consequence.key, 0)
    variables[consequence.key] = int(_apply_count(consequence, current))


def _apply_attribute(
    consequence: Consequence, variables: MutableMapping[str, StateValue]
) -> None:
    current = variables.get(consequence.key, 0)
    variables[consequence.key] = _apply_count(consequence, current)


def _apply_flag(consequence: Consequence, variables: MutableMapping[str, StateValue]) -> None:
    if consequence.operation is Operation.REMOVE:
        variables[consequence.key] = False
    else:
        variables[consequence.key] = bool(consequence.value)


_APPLIERS: Mapping[Kind, Callable[[Consequence, MutableMapping[str, StateValue]], None]] = {
    Kind.ITEM: _apply_item,
    Kind.ATTRIBUTE: _apply_attribute,
    Kind.FLAG: _apply_flag,
}


def apply_consequences(
    consequences: Iterable[Consequence], state: PlayerState
) -> tuple[dict[str, StateValue], dict[str, Kind]] | str:
    """Apply ``consequences`` to copies of the state's store.

    Returns the new ``(variables, kinds)`` pair, or the reason the whole
    batch was refused. Nothing is applied when any consequence is invalid.
    """

    variables: dict[str, StateValue] = dict(state.variables)
    kinds: dict[str, Kind] = dict(state.kinds)

    for consequence in consequences:
        problem = describe_consequence_problem(consequence)
        if problem is not None:
            return problem
        bound = kinds.get(consequence.key)
        if bound is not None and bound is not consequence.kind:
            return (
                f"'{consequence.key}' holds a {bound.value}, "
                f"not a {consequence.kind.value}"
            )
        _APPLIERS[consequence.kind](consequence, variables)
        kinds[consequence.key] = consequence.kind

    return variables, kinds


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------


class StateEngine:
    """Evaluate choices and transitions for one project.

    The engine keeps a private deep copy of the project so later edits in the
    editor cannot change the rules of a playtest already in progress.
    """

    def __init__(self, project: Project) -> None:
        self._project = project.model_copy(deep=True)

    @property
    def project(self) -> Project:
        return self._project

    def reset(self) -> PlayerState:
        """Return a fresh state at the start scene with an empty store."""

        start = self._project.start_scene()
        if start is None:
            if self._project.scenes:
                issue = ValidationIssue(
                    code="missing-start-scene",
                    message=f"Start scene '{self._project.start_scene_id}' does not exist.",
                )
            else:
                issue = ValidationIssue(code="no-scenes", message="Project has no scenes.")
            raise ValidationError([issue])
        return PlayerState(current_scene_id=start.id)

    def current_scene(self, state: PlayerState) -> Scene | None:
        return self._project.get_scene(state.current_scene_id)

    def list_available_choices(
        self, state: PlayerState, scene: Scene | None = None
    ) -> list[ChoiceAvailability]:
        """Report every choice of ``scene`` in display order with its availability."""

        if scene is None:
            scene = self.current_scene(state)
        if scene is None:
            return []

        report: list[ChoiceAvailability] = []
        for index, choice in enumerate(scene.choices):
            reason = evaluate_requirements(choice.requirements, state)
            report.append(
                ChoiceAvailability(
                    choice=choice,
                    index=index,
                    allowed=reason is None,
                    reason=reason,
                )
            )
        return report

    def select_choice(self, state: PlayerState, choice_id: str) -> Transition:
        """Apply ``choice_id`` to ``state``, or explain why it cannot be taken."""

        def _reject(reason: str) -> TransitionRejected:
            logger.debug("Rejected choice %s: %s", choice_id, reason)
            return TransitionRejected(choice_id=choice_id, reason=reason, state=state)

        if state.ended:
            return _reject("the story has already ended")

        scene = self.current_scene(state)
        choice = scene.get_choice(choice_id) if scene is not None else None
        if choice is None:
            owner = self._project.find_choice(choice_id)
            if owner is not None:
                return _reject(
                    f"choice belongs to scene '{owner[0].id}', "
                    f"not the current scene '{state.current_scene_id}'"
                )
            return _reject("no such choice")

        reason = evaluate_requirements(choice.requirements, state)
        if reason is not None:
            return _reject(reason)

        if not choice.is_terminal and self._project.get_scene(choice.next_scene_id) is None:
            return _reject(f"target scene '{choice.next_scene_id}' does not exist")

        applied = apply_consequences(choice.consequences, state)
        if isinstance(applied, str):
            return _reject(applied)
        variables, kinds = applied

        if choice.is_terminal:
            next_state = PlayerState(
                current_scene_id=state.current_scene_id,
                variables=variables,
                kinds=kinds,
                status="ended",
                history=state.history + (choice.id,),
            )
        else:
            next_state = PlayerState(
                current_scene_id=choice.next_scene_id,
                variables=variables,
                kinds=kinds,
                status="active",
                history=state.history + (choice.id,),
            )
        logger.debug(
            "Choice %s moved %s -> %s (%s)",
            choice.id,
            state.current_scene_id,
            next_state.current_scene_id,
            next_state.status,
        )
        return TransitionResult(state=next_state, choice=choice)

    def replay(self, choice_ids: Iterable[str]) -> PlayerState:
        """Reset and apply ``choice_ids`` in order.

        Raises:
            TransitionRejectedError: If any recorded choice is refused.
        """

        state = self.reset()
        for choice_id in choice_ids:
            outcome = self.select_choice(state, choice_id)
            if isinstance(outcome, TransitionRejected):
                raise TransitionRejectedError(choice_id, outcome.reason)
            state = outcome.state
        return state


def reset(project: Project) -> PlayerState:
    """Return the initial state for ``project``."""

    return StateEngine(project).reset()


def list_available_choices(
    project: Project, state: PlayerState, scene: Scene | None = None
) -> list[ChoiceAvailability]:
    return StateEngine(project).list_available_choices(state, scene)


def select_choice(project: Project, state: PlayerState, choice_id: str) -> Transition:
    return StateEngine(project).select_choice(state, choice_id)


__all__ = [
    "ChoiceAvailability",
    "PlayerState",
    "StateEngine",
    "Transition",
    "TransitionRejected",
    "TransitionResult",
    "apply_consequences",
    "evaluate_requirement",
    "evaluate_requirements",
    "list_available_choices",
    "reset",
    "select_choice",
]
