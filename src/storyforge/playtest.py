"""Imperative preview session wrapped around the pure state engine."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Sequence

from .model import Project, Scene
from .state_engine import (
    ChoiceAvailability,
    PlayerState,
    StateEngine,
    Transition,
    TransitionRejected,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single playtest step."""

    choice_id: str
    outcome: Transition

    @property
    def accepted(self) -> bool:
        return self.outcome.accepted


class PlaytestSession:
    """Hold the current state of one preview.

    A session belongs to a single caller; it is not safe to drive the same
    session from two threads.
    """

    def __init__(
        self,
        project: Project,
        *,
        session_id: str | None = None,
        state: PlayerState | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._engine = StateEngine(project)
        self._state = state if state is not None else self._engine.reset()
        self._steps: list[StepResult] = []

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def engine(self) -> StateEngine:
        return self._engine

    @property
    def scene(self) -> Scene | None:
        return self._engine.current_scene(self._state)

    @property
    def steps(self) -> Sequence[StepResult]:
        return tuple(self._steps)

    @property
    def ended(self) -> bool:
        return self._state.ended

    def choices(self) -> list[ChoiceAvailability]:
        return self._engine.list_available_choices(self._state)

    def choose(self, choice_id: str) -> Transition:
        """Select ``choice_id``; the session state only changes on success."""

        outcome = self._engine.select_choice(self._state, choice_id)
        self._steps.append(StepResult(choice_id=choice_id, outcome=outcome))
        if not isinstance(outcome, TransitionRejected):
            self._state = outcome.state
        return outcome

    def choose_number(self, number: int) -> Transition:
        """Select a choice by its 1-based display number."""

        scene = self.scene
        if scene is None or not 1 <= number <= len(scene.choices):
            return TransitionRejected(
                choice_id=str(number),
                reason=f"there is no choice number {number}",
                state=self._state,
            )
        return self.choose(scene.choices[number - 1].id)

    def restart(self) -> PlayerState:
        logger.debug("Restarting playtest session %s", self.session_id)
        self._state = self._engine.reset()
        self._steps.clear()
        return self._state

    def run(self, choice_ids: Iterable[str]) -> list[StepResult]:
        """Feed ``choice_ids`` in order, stopping at the first rejection."""

        results: list[StepResult] = []
        for choice_id in choice_ids:
            self.choose(choice_id)
            step = self._steps[-1]
            results.append(step)
            if not step.accepted:
                break
        return results


__all__ = ["PlaytestSession", "StepResult"]
