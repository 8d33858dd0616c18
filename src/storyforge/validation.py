"""Structural validation for projects at the editor/export boundary.

Validation never raises and never repairs anything: it collects every
problem it can find and leaves the decision to block saving, playtesting or
exporting to the caller. Graphs are routinely incomplete while an author is
still working, so dangling targets are only reported here.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Literal

from .analytics import compute_reachability
from .errors import ValidationError
from .model import (
    TERMINAL_SCENE_ID,
    Condition,
    Consequence,
    Kind,
    Operation,
    Operator,
    Project,
)

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning"]
ValidationStatus = Literal["valid", "warnings", "errors"]

TWINE_END_PASSAGE = "End"


@dataclass(frozen=True)
class ValidationIssue:
    """A single structural problem found in a project."""

    code: str
    message: str
    severity: Severity = "error"
    scene_id: str | None = None
    choice_id: str | None = None

    def to_payload(self) -> dict[str, str | None]:
        return {
            "code": self.code,
            "severity": self.severity,
            "message": self.message,
            "sceneId": self.scene_id,
            "choiceId": self.choice_id,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a project."""

    issues: tuple[ValidationIssue, ...] = ()

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity == "warning")

    @property
    def is_valid(self) -> bool:
        """Return ``True`` when no error-level issue was found."""

        return not self.errors

    @property
    def status(self) -> ValidationStatus:
        if self.errors:
            return "errors"
        if self.warnings:
            return "warnings"
        return "valid"

    def codes(self) -> set[str]:
        return {issue.code for issue in self.issues}

    def raise_for_errors(self) -> None:
        """Raise :class:`ValidationError` when any error-level issue exists."""

        if self.errors:
            raise ValidationError(self.errors)

    def merged(self, others: Iterable[ValidationIssue]) -> "ValidationResult":
        return ValidationResult(issues=self.issues + tuple(others))


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def describe_condition_problem(condition: Condition) -> str | None:
    """Return why ``condition`` is malformed, or ``None`` when it is usable."""

    if condition.kind is Kind.FLAG:
        if condition.operator is not Operator.EQ:
            return (
                f"flag '{condition.key}' can only be compared with '=', "
                f"not '{condition.operator.value}'"
            )
        if not isinstance(condition.value, bool):
            return f"flag '{condition.key}' must be compared with true or false"
        return None

    if not _is_number(condition.value):
        return f"{condition.kind.value} '{condition.key}' must be compared with a number"
    return None


def describe_consequence_problem(consequence: Consequence) -> str | None:
    """Return why ``consequence`` cannot be applied, or ``None``."""

    kind = consequence.kind
    value = consequence.value

    if kind is Kind.FLAG:
        if consequence.operation is Operation.ADD:
            return f"flag '{consequence.key}' cannot be added to"
        if consequence.operation is Operation.SET and not isinstance(value, bool):
            return f"flag '{consequence.key}' can only be set to true or false"
        return None

    if kind is Kind.ITEM:
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            return f"item '{consequence.key}' needs a non-negative whole count"
        return None

    if not _is_number(value):
        return f"attribute '{consequence.key}' needs a numeric value"
    return None


def _declared_kind(value: object) -> Kind | None:
    if isinstance(value, bool):
        return Kind.FLAG
    if _is_number(value):
        return Kind.ATTRIBUTE
    return None


def _check_scene_identity(project: Project) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for scene in project.scenes:
        if scene.id in seen:
            issues.append(
                ValidationIssue(
                    code="duplicate-scene-id",
                    message=f"Scene id '{scene.id}' is used more than once.",
                    scene_id=scene.id,
                )
            )
        seen.add(scene.id)

        seen_choices: set[str] = set()
        for choice in scene.choices:
            if choice.id in seen_choices:
                issues.append(
                    ValidationIssue(
                        code="duplicate-choice-id",
                        message=(
                            f"Choice id '{choice.id}' appears more than once in "
                            f"scene '{scene.id}'."
                        ),
                        scene_id=scene.id,
                        choice_id=choice.id,
                    )
                )
            seen_choices.add(choice.id)
    return issues


def _check_start(project: Project) -> list[ValidationIssue]:
    if not project.scenes:
        return [ValidationIssue(code="no-scenes", message="Project has no scenes.")]
    if project.start_scene_id is not None and project.get_scene(project.start_scene_id) is None:
        return [
            ValidationIssue(
                code="missing-start-scene",
                message=f"Start scene '{project.start_scene_id}' does not exist.",
                scene_id=project.start_scene_id,
            )
        ]
    return []


def _check_targets(project: Project) -> list[ValidationIssue]:
    known = set(project.scene_ids())
    issues: list[ValidationIssue] = []
    for scene in project.scenes:
        for choice in scene.choices:
            target = choice.next_scene_id
            if target == TERMINAL_SCENE_ID or target in known:
                continue
            if target.strip():
                message = (
                    f"Choice '{choice.id}' in scene '{scene.id}' points to "
                    f"unknown scene '{target}'."
                )
            else:
                message = f"Choice '{choice.id}' in scene '{scene.id}' has no target scene."
            issues.append(
                ValidationIssue(
                    code="dangling-target",
                    message=message,
                    scene_id=scene.id,
                    choice_id=choice.id,
                )
            )
    return issues


def _check_rules(project: Project) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    usage: dict[str, set[Kind]] = defaultdict(set)

    for key, value in project.variables.items():
        declared = _declared_kind(value)
        if declared is not None:
            usage[key].add(declared)

    for scene in project.scenes:
        for choice in scene.choices:
            for condition in choice.requirements:
                usage[condition.key].add(condition.kind)
                problem = describe_condition_problem(condition)
                if problem is None:
                    continue
                code = (
                    "flag-operator"
                    if condition.kind is Kind.FLAG and condition.operator is not Operator.EQ
                    else "invalid-value"
                )
                issues.append(
                    ValidationIssue(
                        code=code,
                        message=f"Choice '{choice.id}': {problem}.",
                        scene_id=scene.id,
                        choice_id=choice.id,
                    )
                )
            for consequence in choice.consequences:
                usage[consequence.key].add(consequence.kind)
                problem = describe_consequence_problem(consequence)
                if problem is not None:
                    issues.append(
                        ValidationIssue(
                            code="invalid-value",
                            message=f"Choice '{choice.id}': {problem}.",
                            scene_id=scene.id,
                            choice_id=choice.id,
                        )
                    )

    for key in sorted(usage):
        kinds = usage[key]
        if len(kinds) > 1:
            names = ", ".join(sorted(kind.value for kind in kinds))
            issues.append(
                ValidationIssue(
                    code="variable-kind-collision",
                    message=f"Variable '{key}' is used as more than one kind ({names}).",
                )
            )
    return issues


def _check_reachability(project: Project) -> list[ValidationIssue]:
    if not project.scenes:
        return []
    report = compute_reachability(project)
    if report.start_scene is None:
        return []
    return [
        ValidationIssue(
            code="unreachable-scene",
            severity="warning",
            message=f"Scene '{scene_id}' cannot be reached from the start scene.",
            scene_id=scene_id,
        )
        for scene_id in report.unreachable_scenes
    ]


def validate(project: Project) -> ValidationResult:
    """Collect structural problems in ``project`` without raising."""

    issues: list[ValidationIssue] = []
    issues.extend(_check_start(project))
    issues.extend(_check_scene_identity(project))
    issues.extend(_check_targets(project))
    issues.extend(_check_rules(project))
    issues.extend(_check_reachability(project))

    result = ValidationResult(issues=tuple(issues))
    if issues:
        logger.debug(
            "Validated project %s: %d error(s), %d warning(s)",
            project.id,
            len(result.errors),
            len(result.warnings),
        )
    return result


def passage_title(title: str) -> str:
    """Collapse whitespace so a scene title fits on one passage header line."""

    return " ".join(title.split())


def _check_twine_titles(project: Project) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    seen: dict[str, str] = {}
    for scene in project.scenes:
        title = passage_title(scene.title)
        if title == TWINE_END_PASSAGE:
            issues.append(
                ValidationIssue(
                    code="reserved-title",
                    message=(
                        f"Scene '{scene.id}' is titled '{TWINE_END_PASSAGE}', which is "
                        "reserved for the generated ending passage."
                    ),
                    scene_id=scene.id,
                )
            )
        if title in seen:
            issues.append(
                ValidationIssue(
                    code="duplicate-title",
                    message=(
                        f"Scenes '{seen[title]}' and '{scene.id}' share the title "
                        f"'{title}'; Twine links need unique titles."
                    ),
                    scene_id=scene.id,
                )
            )
        else:
            seen[title] = scene.id
    return issues


def validate_for_export(project: Project, target: str) -> ValidationResult:
    """Validate ``project`` plus the extra rules of an export ``target``."""

    result = validate(project)
    if target == "twine":
        result = result.merged(_check_twine_titles(project))
    return result


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "ValidationStatus",
    "describe_condition_problem",
    "describe_consequence_problem",
    "passage_title",
    "validate",
    "validate_for_export",
]
