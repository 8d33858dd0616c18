"""Structural metrics for a project's scene graph."""

from __future__ import annotations

from dataclasses import dataclass

from .model import Kind, Operation, Project


@dataclass(frozen=True)
class ReachabilityReport:
    """Summary of which scenes can be visited from the start scene."""

    start_scene: str | None
    reachable_scenes: tuple[str, ...]
    unreachable_scenes: tuple[str, ...]

    @property
    def reachable_count(self) -> int:
        return len(self.reachable_scenes)

    @property
    def unreachable_count(self) -> int:
        return len(self.unreachable_scenes)

    @property
    def total_scene_count(self) -> int:
        return self.reachable_count + self.unreachable_count

    @property
    def fully_reachable(self) -> bool:
        """Return ``True`` if every scene can be visited."""

        return self.unreachable_count == 0


@dataclass(frozen=True)
class ProjectMetrics:
    """Summary statistics describing the breadth of a project."""

    scene_count: int
    choice_count: int
    terminal_choice_count: int
    gated_choice_count: int
    consequence_count: int
    average_choices_per_scene: float
    max_choices_in_scene: int
    items_granted: tuple[str, ...]
    items_required: tuple[str, ...]
    flags_set: tuple[str, ...]


def compute_reachability(project: Project) -> ReachabilityReport:
    """Determine which scenes are reachable from the project's start scene.

    The walk follows ``nextSceneId`` edges and ignores requirements, so it
    reports structural reachability only. A project without a resolvable
    start scene has every scene unreachable.
    """

    start = project.start_scene()
    scene_ids = project.scene_ids()
    if start is None:
        return ReachabilityReport(
            start_scene=None,
            reachable_scenes=(),
            unreachable_scenes=tuple(sorted(set(scene_ids))),
        )

    known = set(scene_ids)
    visited: set[str] = set()
    frontier = [start.id]

    while frontier:
        current = frontier.pop()
        if current in visited:
            continue
        visited.add(current)

        scene = project.get_scene(current)
        if scene is None:
            continue
        for choice in scene.choices:
            target = choice.next_scene_id
            if target in known and target not in visited:
                frontier.append(target)

    return ReachabilityReport(
        start_scene=start.id,
        reachable_scenes=tuple(sorted(visited)),
        unreachable_scenes=tuple(sorted(known - visited)),
    )


def compute_metrics(project: Project) -> ProjectMetrics:
    scene_count = len(project.scenes)
    choice_count = 0
    terminal = 0
    gated = 0
    consequence_count = 0
    max_choices = 0
    granted: set[str] = set()
    required: set[str] = set()
    flags: set[str] = set()

    for scene in project.scenes:
        max_choices = max(max_choices, len(scene.choices))
        for choice in scene.choices:
            choice_count += 1
            if choice.is_terminal:
                terminal += 1
            if choice.requirements:
                gated += 1
            for requirement in choice.requirements:
                if requirement.kind is Kind.ITEM:
                    required.add(requirement.key)
            for consequence in choice.consequences:
                consequence_count += 1
                if consequence.kind is Kind.ITEM and consequence.operation is not Operation.REMOVE:
                    granted.add(consequence.key)
                elif consequence.kind is Kind.FLAG:
                    flags.add(consequence.key)

    average = round(choice_count / scene_count, 2) if scene_count else 0.0

    return ProjectMetrics(
        scene_count=scene_count,
        choice_count=choice_count,
        terminal_choice_count=terminal,
        gated_choice_count=gated,
        consequence_count=consequence_count,
        average_choices_per_scene=average,
        max_choices_in_scene=max_choices,
        items_granted=tuple(sorted(granted)),
        items_required=tuple(sorted(required)),
        flags_set=tuple(sorted(flags)),
    )


def format_reachability_report(report: ReachabilityReport) -> str:
    """Return a human-friendly report describing scene reachability."""

    lines = [
        "Scene Reachability",
        "==================",
        f"Start scene: {report.start_scene or '(none)'}",
        f"Reachable scenes: {report.reachable_count} / {report.total_scene_count}",
    ]

    if report.unreachable_scenes:
        lines.append("Unreachable scenes detected:")
        lines.extend(f"- {scene}" for scene in report.unreachable_scenes)
    else:
        lines.append("All scenes are reachable from the start scene.")

    return "\n".join(lines)


def format_metrics_report(metrics: ProjectMetrics) -> str:
    lines = [
        "Project Metrics",
        "===============",
        f"Scenes: {metrics.scene_count}",
        f"Choices: {metrics.choice_count}",
        f"Average choices per scene: {metrics.average_choices_per_scene:.2f}",
        f"Most choices in one scene: {metrics.max_choices_in_scene}",
        f"Ending choices: {metrics.terminal_choice_count}",
        f"Gated choices: {metrics.gated_choice_count}",
        f"Consequences: {metrics.consequence_count}",
    ]
    if metrics.items_granted:
        lines.append("Items granted: " + ", ".join(metrics.items_granted))
    if metrics.items_required:
        lines.append("Items required: " + ", ".join(metrics.items_required))
    missing = sorted(set(metrics.items_required) - set(metrics.items_granted))
    if missing:
        lines.append("Required but never granted: " + ", ".join(missing))
    return "\n".join(lines)


__all__ = [
    "ProjectMetrics",
    "ReachabilityReport",
    "compute_metrics",
    "compute_reachability",
    "format_metrics_report",
    "format_reachability_report",
]
