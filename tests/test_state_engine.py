from __future__ import annotations

import pytest

from storyforge.errors import TransitionRejectedError, ValidationError
from storyforge.model import (
    Choice,
    Condition,
    Consequence,
    Kind,
    Operation,
    Operator,
    Project,
    Scene,
)
from storyforge.state_engine import (
    PlayerState,
    StateEngine,
    TransitionRejected,
    TransitionResult,
    list_available_choices,
    reset,
    select_choice,
)


def _allowed(project: Project, state: PlayerState) -> dict[str, bool]:
    return {entry.choice.id: entry.allowed for entry in list_available_choices(project, state)}


def test_reset_starts_at_the_start_scene_with_empty_store(cave_project: Project) -> None:
    state = reset(cave_project)

    assert state.current_scene_id == "start"
    assert dict(state.variables) == {}
    assert state.status == "active"
    assert state.history == ()


def test_reset_is_deterministic(cave_project: Project) -> None:
    assert reset(cave_project) == reset(cave_project)


def test_reset_refuses_projects_without_a_start() -> None:
    with pytest.raises(ValidationError) as excinfo:
        reset(Project(id="p", name="P"))
    assert excinfo.value.issues[0].code == "no-scenes"

    broken = Project(id="p", name="P", scenes=[Scene(id="a", title="A")], start_scene_id="b")
    with pytest.raises(ValidationError) as excinfo:
        reset(broken)
    assert excinfo.value.issues[0].code == "missing-start-scene"


def test_torch_gates_the_cave(cave_project: Project) -> None:
    state = reset(cave_project)
    availability = list_available_choices(cave_project, state)

    gated = next(entry for entry in availability if entry.choice.id == "enter-cave")
    assert not gated.allowed
    assert gated.reason == "requires item 'torch' >= 1 (have 0)"

    outcome = select_choice(cave_project, state, "take-torch")
    assert isinstance(outcome, TransitionResult)
    assert outcome.state.item_count("torch") == 1
    assert _allowed(cave_project, outcome.state)["enter-cave"] is True


def test_gated_choice_is_rejected_without_changing_state(cave_project: Project) -> None:
    state = reset(cave_project)

    outcome = select_choice(cave_project, state, "enter-cave")

    assert isinstance(outcome, TransitionRejected)
    assert not outcome.accepted
    assert outcome.state is state


def test_terminal_choice_ends_the_story_in_place(cave_project: Project) -> None:
    engine = StateEngine(cave_project)
    state = engine.replay(["take-torch", "enter-cave", "rest"])

    assert state.ended
    assert state.current_scene_id == "cave"
    assert state.flag("rested") is True
    assert state.attribute("courage") == 2
    assert state.history == ("take-torch", "enter-cave", "rest")

    after = engine.select_choice(state, "leave")
    assert isinstance(after, TransitionRejected)
    assert after.reason == "the story has already ended"


def test_choice_from_another_scene_is_rejected(cave_project: Project) -> None:
    outcome = select_choice(cave_project, reset(cave_project), "rest")

    assert isinstance(outcome, TransitionRejected)
    assert "belongs to scene 'cave'" in outcome.reason

    unknown = select_choice(cave_project, reset(cave_project), "fly")
    assert isinstance(unknown, TransitionRejected)
    assert unknown.reason == "no such choice"


def test_item_removal_clamps_at_zero(cave_project: Project) -> None:
    engine = StateEngine(cave_project)
    state = engine.replay(["take-torch", "enter-cave", "leave"])

    assert state.current_scene_id == "start"
    assert state.item_count("torch") == 0
    assert state.inventory() == {}


def _single_scene(*choices: Choice, target: Scene | None = None) -> Project:
    scenes = [Scene(id="a", title="A", choices=list(choices))]
    if target is not None:
        scenes.append(target)
    return Project(id="p", name="P", scenes=scenes)


def test_flag_removal_clears_the_flag() -> None:
    project = _single_scene(
        Choice(
            id="light",
            text="Light the lamp",
            next_scene_id="a",
            consequences=[Consequence(kind=Kind.FLAG, key="lit", value=True)],
        ),
        Choice(
            id="snuff",
            text="Snuff it out",
            next_scene_id="a",
            consequences=[
                Consequence(kind=Kind.FLAG, key="lit", value=True, operation=Operation.REMOVE)
            ],
        ),
    )
    engine = StateEngine(project)

    assert engine.replay(["light"]).flag("lit") is True
    state = engine.replay(["light", "snuff"])
    assert state.flag("lit") is False
    assert state.variables["lit"] is False


def test_attribute_removal_clamps_at_zero() -> None:
    project = _single_scene(
        Choice(
            id="train",
            text="Train",
            next_scene_id="a",
            consequences=[
                Consequence(kind=Kind.ATTRIBUTE, key="stamina", value=2, operation=Operation.ADD)
            ],
        ),
        Choice(
            id="collapse",
            text="Collapse",
            next_scene_id="a",
            consequences=[
                Consequence(
                    kind=Kind.ATTRIBUTE, key="stamina", value=5, operation=Operation.REMOVE
                )
            ],
        ),
    )

    state = StateEngine(project).replay(["train", "collapse"])

    assert state.attribute("stamina") == 0


def test_adding_to_a_flag_is_rejected_without_changes() -> None:
    project = _single_scene(
        Choice(
            id="c",
            text="Go",
            next_scene_id="b",
            consequences=[
                Consequence(kind=Kind.ITEM, key="coin", value=1, operation=Operation.ADD),
                Consequence(kind=Kind.FLAG, key="lit", value=True, operation=Operation.ADD),
            ],
        ),
        target=Scene(id="b", title="B"),
    )
    state = reset(project)

    outcome = select_choice(project, state, "c")

    assert isinstance(outcome, TransitionRejected)
    assert outcome.reason == "flag 'lit' cannot be added to"
    assert outcome.state is state
    assert dict(outcome.state.variables) == {}
    assert outcome.state.current_scene_id == "a"


def test_transition_is_atomic_when_a_consequence_is_invalid() -> None:
    project = _single_scene(
        Choice(
            id="c",
            text="Go",
            next_scene_id="b",
            consequences=[
                Consequence(kind=Kind.ITEM, key="coin", value=3, operation=Operation.ADD),
                Consequence(kind=Kind.FLAG, key="coin", value=True),
            ],
        ),
        target=Scene(id="b", title="B"),
    )
    state = reset(project)

    outcome = select_choice(project, state, "c")

    assert isinstance(outcome, TransitionRejected)
    assert outcome.reason == "'coin' holds a item, not a flag"
    assert outcome.state == state
    assert dict(state.variables) == {}


def test_missing_target_scene_is_rejected() -> None:
    project = _single_scene(Choice(id="c", text="Go", next_scene_id="nowhere"))

    outcome = select_choice(project, reset(project), "c")

    assert isinstance(outcome, TransitionRejected)
    assert outcome.reason == "target scene 'nowhere' does not exist"


def test_flag_requirement_uses_equality() -> None:
    project = _single_scene(
        Choice(
            id="light",
            text="Light the lamp",
            next_scene_id="a",
            consequences=[Consequence(kind=Kind.FLAG, key="lit", value=True)],
        ),
        Choice(
            id="read",
            text="Read the map",
            requirements=[Condition(kind=Kind.FLAG, key="lit", value=True)],
        ),
        Choice(
            id="sneak",
            text="Sneak by",
            requirements=[Condition(kind=Kind.FLAG, key="lit", operator=Operator.GT, value=True)],
        ),
    )
    state = reset(project)
    assert _allowed(project, state) == {"light": True, "read": False, "sneak": False}

    lit = select_choice(project, state, "light").state
    assert _allowed(project, lit)["read"] is True
    assert _allowed(project, lit)["sneak"] is False


def test_attribute_set_and_compare() -> None:
    project = _single_scene(
        Choice(
            id="train",
            text="Train",
            next_scene_id="a",
            consequences=[Consequence(kind=Kind.ATTRIBUTE, key="strength", value=7.5)],
        ),
        Choice(
            id="lift",
            text="Lift the boulder",
            requirements=[
                Condition(kind=Kind.ATTRIBUTE, key="strength", operator=Operator.GT, value=7)
            ],
        ),
    )
    state = select_choice(project, reset(project), "train").state

    assert state.attribute("strength") == 7.5
    assert _allowed(project, state)["lift"] is True


def test_replay_is_deterministic_and_raises_on_rejection(cave_project: Project) -> None:
    engine = StateEngine(cave_project)
    path = ["take-torch", "take-torch", "enter-cave", "leave"]

    assert engine.replay(path) == engine.replay(path)
    assert engine.replay(path).item_count("torch") == 1

    with pytest.raises(TransitionRejectedError) as excinfo:
        engine.replay(["enter-cave"])
    assert excinfo.value.choice_id == "enter-cave"


def test_engine_is_isolated_from_later_project_edits(cave_project: Project) -> None:
    engine = StateEngine(cave_project)
    cave_project.remove_scene("cave")

    state = engine.replay(["take-torch", "enter-cave"])
    assert state.current_scene_id == "cave"


def test_player_state_payload_round_trip(cave_project: Project) -> None:
    state = StateEngine(cave_project).replay(["take-torch", "enter-cave", "rest"])

    payload = state.to_payload()
    assert payload["currentSceneId"] == "cave"
    assert payload["kinds"] == {"torch": "item", "rested": "flag", "courage": "attribute"}
    assert PlayerState.from_payload(payload) == state


def test_player_state_payload_requires_kinds() -> None:
    with pytest.raises(ValueError):
        PlayerState.from_payload(
            {"currentSceneId": "a", "variables": {"torch": 1}, "kinds": {}}
        )


def test_player_state_is_immutable(cave_project: Project) -> None:
    state = select_choice(cave_project, reset(cave_project), "take-torch").state

    with pytest.raises(TypeError):
        state.variables["torch"] = 5  # type: ignore[index]
