from __future__ import annotations

import pytest

from storyforge.errors import ValidationError
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
from storyforge.validation import validate, validate_for_export


def _project(*scenes: Scene, **kwargs) -> Project:
    return Project(id="p", name="P", scenes=list(scenes), **kwargs)


def test_sample_project_is_valid(cave_project: Project) -> None:
    result = validate(cave_project)

    assert result.is_valid
    assert result.status == "valid"
    assert result.issues == ()


def test_empty_project_reports_no_scenes() -> None:
    result = validate(_project())

    assert result.codes() == {"no-scenes"}
    assert not result.is_valid


def test_missing_start_scene_is_an_error() -> None:
    result = validate(_project(Scene(id="a", title="A"), start_scene_id="ghost"))

    assert "missing-start-scene" in result.codes()


def test_duplicate_scene_and_choice_ids() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[Choice(id="c", text="One"), Choice(id="c", text="Two")],
    )
    result = validate(_project(scene, Scene(id="a", title="Copy")))

    assert {"duplicate-scene-id", "duplicate-choice-id"} <= result.codes()


def test_dangling_and_empty_targets_are_reported() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[
            Choice(id="c1", text="Nowhere", next_scene_id="missing"),
            Choice(id="c2", text="Blank", next_scene_id=""),
        ],
    )
    result = validate(_project(scene))

    dangling = [issue for issue in result.errors if issue.code == "dangling-target"]
    assert [issue.choice_id for issue in dangling] == ["c1", "c2"]
    assert "no target scene" in dangling[1].message


def test_flag_requirement_with_ordering_operator_is_rejected() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[
            Choice(
                id="c",
                text="Go",
                requirements=[
                    Condition(kind=Kind.FLAG, key="door", operator=Operator.GT, value=True)
                ],
            )
        ],
    )
    result = validate(_project(scene))

    assert result.codes() == {"flag-operator"}


def test_invalid_values_are_reported() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[
            Choice(
                id="c",
                text="Go",
                requirements=[Condition(kind=Kind.ITEM, key="torch", value=True)],
                consequences=[
                    Consequence(kind=Kind.ITEM, key="coin", value=-1, operation=Operation.ADD),
                    Consequence(kind=Kind.FLAG, key="seen", value=1),
                ],
            )
        ],
    )
    result = validate(_project(scene))

    invalid = [issue for issue in result.errors if issue.code == "invalid-value"]
    assert len(invalid) == 3


def test_variable_used_as_two_kinds_collides() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[
            Choice(
                id="c",
                text="Go",
                requirements=[Condition(kind=Kind.ITEM, key="key", value=1)],
                consequences=[Consequence(kind=Kind.FLAG, key="key", value=True)],
            )
        ],
    )
    result = validate(_project(scene))

    assert result.codes() == {"variable-kind-collision"}


def test_declared_variables_take_part_in_collision_checks() -> None:
    scene = Scene(
        id="a",
        title="A",
        choices=[
            Choice(
                id="c",
                text="Go",
                requirements=[Condition(kind=Kind.ITEM, key="gold", value=1)],
            )
        ],
    )
    result = validate(_project(scene, variables={"gold": 5}))

    assert "variable-kind-collision" in result.codes()


def test_unreachable_scene_is_only_a_warning() -> None:
    result = validate(_project(Scene(id="a", title="A"), Scene(id="island", title="Island")))

    assert result.is_valid
    assert result.status == "warnings"
    assert [issue.scene_id for issue in result.warnings] == ["island"]


def test_raise_for_errors_carries_every_error() -> None:
    result = validate(_project())

    with pytest.raises(ValidationError) as excinfo:
        result.raise_for_errors()

    assert [issue.code for issue in excinfo.value.issues] == ["no-scenes"]
    assert "Project has no scenes" in str(excinfo.value)


def test_twine_export_checks_titles() -> None:
    project = _project(
        Scene(id="a", title="Hall", choices=[Choice(id="c", text="On", next_scene_id="b")]),
        Scene(id="b", title="Hall", choices=[Choice(id="d", text="On", next_scene_id="c")]),
        Scene(id="c", title="End"),
    )

    assert validate(project).is_valid
    codes = validate_for_export(project, "twine").codes()
    assert {"duplicate-title", "reserved-title"} <= codes
    assert validate_for_export(project, "html").is_valid


def test_issue_payload_uses_camel_case() -> None:
    result = validate(_project(Scene(id="a", title="A", choices=[Choice(id="c", text="x", next_scene_id="z")])))

    assert result.issues[0].to_payload() == {
        "code": "dangling-target",
        "severity": "error",
        "message": "Choice 'c' in scene 'a' points to unknown scene 'z'.",
        "sceneId": "a",
        "choiceId": "c",
    }
