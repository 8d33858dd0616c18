"""Test configuration for the storyforge project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from collections.abc import Mapping, Sequence

import pytest

from storyforge.llm import LLMClient, LLMMessage, LLMResponse
from storyforge.model import (
    TERMINAL_SCENE_ID,
    Choice,
    Condition,
    Consequence,
    Kind,
    Operation,
    Operator,
    Project,
    Scene,
)


class MockLLMClient(LLMClient):
    """Deterministic LLM client used in tests to avoid real API calls."""

    def __init__(self, responses: Sequence[LLMResponse | str | Exception] | None = None) -> None:
        self.calls: list[list[LLMMessage]] = []
        self._responses: list[LLMResponse | Exception] = []
        for response in responses or ():
            self.queue_response(response)

    def queue_response(
        self,
        response: LLMResponse | str | Exception,
        *,
        usage: Mapping[str, int] | None = None,
    ) -> None:
        """Append a reply (or an error to raise) for the next call."""

        if isinstance(response, (LLMResponse, Exception)):
            self._responses.append(response)
            return
        message = LLMMessage(role="assistant", content=response)
        self._responses.append(LLMResponse(message=message, usage=dict(usage or {})))

    def complete(
        self,
        messages: Sequence[LLMMessage],
        *,
        temperature: float | None = None,
    ) -> LLMResponse:
        del temperature

        self.calls.append(list(messages))
        if not self._responses:
            raise AssertionError("MockLLMClient expected a queued response but none remain")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def mock_llm_client() -> MockLLMClient:
    return MockLLMClient()


def build_cave_project() -> Project:
    """Two-scene adventure where the cave needs a torch."""

    start = Scene(
        id="start",
        title="Start",
        description="You stand at the mouth of a dark cave.",
        choices=[
            Choice(
                id="take-torch",
                text="Pick up the torch",
                next_scene_id="start",
                consequences=[
                    Consequence(kind=Kind.ITEM, key="torch", value=1, operation=Operation.ADD)
                ],
            ),
            Choice(
                id="enter-cave",
                text="Enter the cave",
                next_scene_id="cave",
                requirements=[
                    Condition(kind=Kind.ITEM, key="torch", operator=Operator.GE, value=1)
                ],
            ),
            Choice(id="go-home", text="Go home", next_scene_id=TERMINAL_SCENE_ID),
        ],
    )
    cave = Scene(
        id="cave",
        title="Cave",
        description="Torchlight flickers over wet stone.",
        choices=[
            Choice(
                id="rest",
                text="Rest by the fire",
                next_scene_id=TERMINAL_SCENE_ID,
                consequences=[
                    Consequence(kind=Kind.FLAG, key="rested", value=True),
                    Consequence(
                        kind=Kind.ATTRIBUTE, key="courage", value=2, operation=Operation.ADD
                    ),
                ],
            ),
            Choice(
                id="leave",
                text="Leave the cave",
                next_scene_id="start",
                consequences=[
                    Consequence(
                        kind=Kind.ITEM, key="torch", value=1, operation=Operation.REMOVE
                    )
                ],
            ),
        ],
    )
    return Project(
        id="cave-story",
        name="The Cave",
        description="A short test adventure.",
        genre="fantasy",
        scenes=[start, cave],
        start_scene_id="start",
    )


@pytest.fixture()
def cave_project() -> Project:
    return build_cave_project()
