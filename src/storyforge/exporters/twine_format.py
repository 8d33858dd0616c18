"""Twine (Twee) passage script export.

Each scene becomes a ``:: Title`` passage followed by its description and one
``[[text|Target Title]]`` link per choice. Links name passages by title, so
titles must be unique. Requirements and consequences have no equivalent in
plain links and are dropped. Choices that end the story link to a single
generated ``End`` passage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..model import Project
from ..validation import TWINE_END_PASSAGE, passage_title, validate_for_export

logger = logging.getLogger(__name__)

END_PASSAGE_TEXT = "The End."

_RESERVED_PATTERN = re.compile(r"([\\\[\]:|])")
_ESCAPE_PATTERN = re.compile(r"\\(.)", re.DOTALL)
_HEADER_PATTERN = re.compile(r"^:: (.*)$")
_LINK_PATTERN = re.compile(
    r"^\[\[((?:\\.|[^\\|\]])*)\|((?:\\.|[^\\|\]])*)\]\]$"
)


@dataclass(frozen=True)
class TwineLink:
    text: str
    target: str


@dataclass(frozen=True)
class TwinePassage:
    """A passage read back from a Twee script, with escapes undone."""

    title: str
    body: str
    links: tuple[TwineLink, ...] = ()


def escape_twine(text: str) -> str:
    """Backslash-escape ``\\``, ``[``, ``]``, ``:`` and ``|``."""

    return _RESERVED_PATTERN.sub(r"\\\1", text)


def unescape_twine(text: str) -> str:
    """Inverse of :func:`escape_twine`."""

    return _ESCAPE_PATTERN.sub(r"\1", text)


def _inline(text: str) -> str:
    return escape_twine(passage_title(text))


def _body_lines(description: str) -> list[str]:
    lines: list[str] = []
    for line in description.splitlines():
        # A description line must never be read as a passage header.
        if line.startswith("::"):
            line = "\\" + line
        lines.append(line)
    return lines


def export_twine(project: Project) -> str:
    """Render ``project`` as a Twee passage script.

    Raises:
        ValidationError: If the project is structurally invalid or two
            scenes share a title.
    """

    validate_for_export(project, "twine").raise_for_errors()

    titles = {scene.id: passage_title(scene.title) for scene in project.scenes}
    end_title = escape_twine(TWINE_END_PASSAGE)
    needs_end = False
    dropped_rules = 0
    blocks: list[str] = []

    for scene in project.scenes:
        lines = [f":: {_inline(scene.title)}"]
        lines.extend(_body_lines(scene.description))
        for choice in scene.choices:
            dropped_rules += len(choice.requirements) + len(choice.consequences)
            if choice.is_terminal:
                needs_end = True
                target_name = end_title
            else:
                target_name = escape_twine(titles[choice.next_scene_id])
            lines.append(f"[[{_inline(choice.text)}|{target_name}]]")
        blocks.append("\n".join(lines))

    if needs_end:
        blocks.append(f":: {end_title}\n{END_PASSAGE_TEXT}")

    if dropped_rules:
        logger.info(
            "Twine export of project %s dropped %d requirement/consequence rule(s)",
            project.id,
            dropped_rules,
        )

    return "\n\n".join(blocks) + "\n"


def parse_twine(text: str) -> list[TwinePassage]:
    """Read passages back from :func:`export_twine` output."""

    passages: list[TwinePassage] = []
    title: str | None = None
    body: list[str] = []
    links: list[TwineLink] = []

    def _flush() -> None:
        if title is None:
            return
        while body and not body[-1].strip():
            body.pop()
        passages.append(TwinePassage(title=title, body="\n".join(body), links=tuple(links)))

    for line in text.splitlines():
        header = _HEADER_PATTERN.match(line)
        if header:
            _flush()
            title = unescape_twine(header.group(1))
            body = []
            links = []
            continue
        if title is None:
            continue
        link = _LINK_PATTERN.match(line)
        if link:
            links.append(
                TwineLink(
                    text=unescape_twine(link.group(1)),
                    target=unescape_twine(link.group(2)),
                )
            )
            continue
        if line.startswith("\\::"):
            line = line[1:]
        body.append(line)

    _flush()
    return passages


__all__ = [
    "END_PASSAGE_TEXT",
    "TwineLink",
    "TwinePassage",
    "escape_twine",
    "export_twine",
    "parse_twine",
    "unescape_twine",
]
