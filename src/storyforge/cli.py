"""Command-line interface for validating, exporting and playing projects."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Sequence

from pydantic import ValidationError as SchemaError

from .analytics import (
    compute_metrics,
    compute_reachability,
    format_metrics_report,
    format_reachability_report,
)
from .errors import TransitionRejectedError, UnsupportedExportFormat, ValidationError
from .exporters import ExportFormat, export_json, export_project, parse_project_json, resolve_format
from .model import Project
from .playtest import PlaytestSession
from .settings import StudioSettings
from .state_engine import TransitionRejected
from .validation import ValidationResult, validate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_USAGE = 2


class _InputError(Exception):
    """A project file or argument could not be used."""


def _load_project(path: Path) -> Project:
    try:
        project = parse_project_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise _InputError(f"Failed to read '{path}': {exc}") from exc
    except UnicodeDecodeError as exc:
        raise _InputError(f"'{path}' is not UTF-8 text: {exc}") from exc
    except SchemaError as exc:
        raise _InputError(f"'{path}' is not a valid project file: {exc}") from exc
    logger.debug("Loaded project %s from %s", project.id, path)
    return project


def _print_issues(result: ValidationResult) -> None:
    for issue in result.issues:
        location = issue.scene_id or "-"
        if issue.choice_id:
            location += f"/{issue.choice_id}"
        print(f"{issue.severity.upper():8} {issue.code:24} {location}: {issue.message}")


def _cmd_validate(args: argparse.Namespace, settings: StudioSettings) -> int:
    project = _load_project(args.project)
    result = validate(project)
    _print_issues(result)
    print(
        f"{project.name}: {len(result.errors)} error(s), {len(result.warnings)} warning(s)"
    )
    return EXIT_OK if result.is_valid else EXIT_INVALID


def _cmd_export(args: argparse.Namespace, settings: StudioSettings) -> int:
    project = _load_project(args.project)
    try:
        target = resolve_format(args.format or settings.export_format)
    except UnsupportedExportFormat as exc:
        raise _InputError(str(exc)) from exc

    try:
        if target is ExportFormat.JSON:
            artifact = export_json(project, indent=settings.json_indent)
        else:
            artifact = export_project(project, target)
    except ValidationError as exc:
        print(f"Cannot export '{project.name}' as {target.value}:")
        for issue in exc.issues:
            print(f"- [{issue.code}] {issue.message}")
        return EXIT_INVALID

    if args.output is None:
        sys.stdout.write(artifact)
    else:
        args.output.write_text(artifact, encoding="utf-8")
        print(f"Wrote {target.value} export to {args.output}")
    return EXIT_OK


def _cmd_analyse(args: argparse.Namespace, settings: StudioSettings) -> int:
    project = _load_project(args.project)
    print(format_metrics_report(compute_metrics(project)))
    print()
    print(format_reachability_report(compute_reachability(project)))
    return EXIT_OK


def _print_scene(session: PlaytestSession) -> None:
    scene = session.scene
    if scene is None:
        print("(the current scene no longer exists)")
        return
    print()
    print(scene.title)
    print("=" * len(scene.title))
    if scene.description:
        print(scene.description)
    if session.ended:
        print()
        print("The End.")
        return
    for entry in session.choices():
        suffix = "" if entry.allowed else f"  [locked: {entry.reason}]"
        print(f"  {entry.index + 1}. {entry.choice.text}{suffix}")
    inventory = session.state.inventory()
    if inventory:
        print("Inventory: " + ", ".join(f"{key} x{count}" for key, count in inventory.items()))


def run_playtest(
    session: PlaytestSession, *, input_func: Callable[[str], str] | None = None
) -> None:
    """Drive ``session`` interactively until the story ends or the player quits."""

    read = input_func or input
    print("Type a choice number, 'restart' or 'quit'.")
    _print_scene(session)
    while not session.ended:
        try:
            raw = read("> ").strip().lower()
        except EOFError:
            break
        if raw in ("q", "quit", "exit"):
            break
        if raw == "restart":
            session.restart()
            _print_scene(session)
            continue
        if not raw.isdigit():
            print("Enter the number of a choice.")
            continue
        outcome = session.choose_number(int(raw))
        if isinstance(outcome, TransitionRejected):
            print(f"You can't do that: {outcome.reason}")
            continue
        _print_scene(session)


def _cmd_play(args: argparse.Namespace, settings: StudioSettings) -> int:
    project = _load_project(args.project)
    try:
        session = PlaytestSession(project)
    except ValidationError as exc:
        print(str(exc))
        return EXIT_INVALID

    if args.choices is None:
        run_playtest(session)
        return EXIT_OK

    choice_ids = [entry.strip() for entry in args.choices.split(",") if entry.strip()]
    try:
        final = session.engine.replay(choice_ids)
    except TransitionRejectedError as exc:
        print(str(exc))
        return EXIT_INVALID
    print(f"Scene: {final.current_scene_id} ({final.status})")
    for key in sorted(final.variables):
        print(f"  {key} = {final.variables[key]!r}")
    return EXIT_OK


_COMMANDS = {
    "validate": _cmd_validate,
    "export": _cmd_export,
    "analyse": _cmd_analyse,
    "play": _cmd_play,
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="storyforge",
        description="Validate, export and playtest branching text adventures.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override STORYFORGE_LOG_LEVEL (e.g. DEBUG, INFO, WARNING).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Report structural problems.")
    validate_parser.add_argument("project", type=Path, help="Project JSON file.")

    export_parser = subparsers.add_parser("export", help="Compile a project to an artifact.")
    export_parser.add_argument("project", type=Path, help="Project JSON file.")
    export_parser.add_argument(
        "-f",
        "--format",
        default=None,
        help="json, html or twine (defaults to STORYFORGE_EXPORT_FORMAT).",
    )
    export_parser.add_argument(
        "-o", "--output", type=Path, default=None, help="Write to a file instead of stdout."
    )

    analyse_parser = subparsers.add_parser("analyse", help="Print graph metrics.")
    analyse_parser.add_argument("project", type=Path, help="Project JSON file.")

    play_parser = subparsers.add_parser("play", help="Play a project in the terminal.")
    play_parser.add_argument("project", type=Path, help="Project JSON file.")
    play_parser.add_argument(
        "--choices",
        default=None,
        help="Comma separated choice ids to replay instead of playing interactively.",
    )

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = StudioSettings.from_env()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_USAGE

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return _COMMANDS[args.command](args, settings)
    except _InputError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    raise SystemExit(main())
