from __future__ import annotations

import logging

import pytest

from storyforge.errors import ValidationError
from storyforge.exporters import (
    escape_twine,
    export_project,
    export_twine,
    parse_twine,
    unescape_twine,
)
from storyforge.model import TERMINAL_SCENE_ID, Choice, Project, Scene


def _headers(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.startswith(":: ")]


def test_two_scenes_produce_two_passages_and_one_link() -> None:
    project = Project(
        id="p",
        name="P",
        scenes=[
            Scene(
                id="s1",
                title="Start",
                description="A crossroads.",
                choices=[Choice(id="c", text="Go to the cave", next_scene_id="s2")],
            ),
            Scene(id="s2", title="Cave", description="Dark."),
        ],
    )

    text = export_twine(project)

    assert _headers(text) == [":: Start", ":: Cave"]
    links = [line for line in text.splitlines() if line.startswith("[[")]
    assert links == ["[[Go to the cave|Cave]]"]


def test_terminal_choices_share_one_end_passage() -> None:
    project = Project(
        id="p",
        name="P",
        scenes=[
            Scene(
                id="a",
                title="Start",
                choices=[
                    Choice(id="c1", text="Give up", next_scene_id=TERMINAL_SCENE_ID),
                    Choice(id="c2", text="Sleep", next_scene_id=TERMINAL_SCENE_ID),
                    Choice(id="c3", text="Onward", next_scene_id="b"),
                ],
            ),
            Scene(
                id="b",
                title="Field",
                choices=[Choice(id="c4", text="Rest", next_scene_id=TERMINAL_SCENE_ID)],
            ),
        ],
    )

    text = export_twine(project)

    assert _headers(text).count(":: End") == 1
    assert text.count("|End]]") == 3
    assert text.endswith(":: End\nThe End.\n")


def test_no_end_passage_without_terminal_choices() -> None:
    project = Project(
        id="p",
        name="P",
        scenes=[Scene(id="a", title="Loop", choices=[Choice(id="c", text="Again", next_scene_id="a")])],
    )

    assert _headers(export_twine(project)) == [":: Loop"]


def test_brackets_in_titles_are_escaped_and_parse_back() -> None:
    title = "The [[Secret]] Door: A|B"
    project = Project(
        id="p",
        name="P",
        scenes=[
            Scene(
                id="a",
                title=title,
                description="Line one\n:: not a header",
                choices=[Choice(id="c", text="Open [it]", next_scene_id="a")],
            )
        ],
    )

    text = export_twine(project)

    assert "[[Secret]]" not in text
    assert ":: The \\[\\[Secret\\]\\] Door\\: A\\|B" in text
    passages = parse_twine(text)
    assert len(passages) == 1
    assert passages[0].title == title
    assert passages[0].body == "Line one\n:: not a header"
    assert passages[0].links[0].text == "Open [it]"
    assert passages[0].links[0].target == title


def test_escape_is_reversible() -> None:
    raw = r"back\slash [x] a:b c|d"

    assert unescape_twine(escape_twine(raw)) == raw


def test_duplicate_titles_block_twine_export() -> None:
    project = Project(
        id="p",
        name="P",
        scenes=[
            Scene(id="a", title="Hall", choices=[Choice(id="c", text="On", next_scene_id="b")]),
            Scene(id="b", title="Hall"),
        ],
    )

    with pytest.raises(ValidationError) as excinfo:
        export_project(project, "twine")

    assert [issue.code for issue in excinfo.value.issues] == ["duplicate-title"]


def test_dropped_rules_are_logged(cave_project: Project, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="storyforge.exporters.twine_format"):
        export_twine(cave_project)

    assert "dropped 5 requirement/consequence rule(s)" in caplog.text


def test_dangling_targets_block_twine_export() -> None:
    project = Project(
        id="p",
        name="P",
        scenes=[
            Scene(id="a", title="Hall", choices=[Choice(id="c", text="On", next_scene_id="zz")]),
        ],
    )

    with pytest.raises(ValidationError) as excinfo:
        export_project(project, "twine")

    assert [issue.code for issue in excinfo.value.issues] == ["dangling-target"]
