"""Execution plan generation for leveled workflows.

The plan is a read-only view over a workflow: per-level duration estimates,
the critical path and advisory warnings. It never mutates the workflow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .graph import DependencyGraph, build_dependency_graph
from .models import WorkflowConfig

logger = logging.getLogger(__name__)

# Advisory thresholds
MAX_SERIAL_LEVELS = 5
MAX_PARALLEL_STAGES_PER_LEVEL = 5
LONG_LEVEL_SHARE = 0.5


@dataclass
class ExecutionLevel:
    """One level of the schedule.

    Attributes:
        level: 1-based level number
        stages: Stage ids executed on this level
        can_run_in_parallel: True when the level holds more than one stage
        estimated_duration: Slowest member stage timeout in ms
        dependencies: Distinct upstream stages feeding this level
    """

    level: int
    stages: list[str]
    can_run_in_parallel: bool
    estimated_duration: int
    dependencies: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "stages": list(self.stages),
            "canRunInParallel": self.can_run_in_parallel,
            "estimatedDuration": self.estimated_duration,
            "dependencies": list(self.dependencies),
        }


@dataclass
class ExecutionPlan:
    total_stages: int
    estimated_duration: int
    execution_levels: list[ExecutionLevel] = field(default_factory=list)
    critical_path: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalStages": self.total_stages,
            "estimatedDuration": self.estimated_duration,
            "executionLevels": [level.to_dict() for level in self.execution_levels],
            "criticalPath": list(self.critical_path),
            "warnings": list(self.warnings),
        }


def _level_dependencies(level_stages: list[str], graph: DependencyGraph) -> list[str]:
    members = set(level_stages)
    return list(dict.fromkeys(e.from_stage for e in graph.edges if e.to_stage in members))


def find_critical_path(workflow: WorkflowConfig, graph: DependencyGraph | None = None) -> list[str]:
    """Longest cumulative-timeout chain of stages.

    Distances start at zero; an edge ``A -> B`` offers ``dist(A) + timeout(A)``
    to ``B`` and only a strictly larger offer replaces the current one. The
    path ends at the stage with the largest ``dist + own timeout``.
    """
    graph = graph or build_dependency_graph(workflow)
    timeouts = {stage.id: stage.timeout_ms for stage in workflow.stages}
    if not timeouts:
        return []

    distances: dict[str, int] = {node: 0 for node in graph.nodes}
    predecessors: dict[str, str | None] = {node: None for node in graph.nodes}

    for level in graph.levels:
        for stage_id in level:
            for edge in graph.incoming(stage_id):
                if edge.from_stage == stage_id:
                    continue
                offer = distances[edge.from_stage] + timeouts.get(edge.from_stage, 0)
                if offer > distances[stage_id]:
                    distances[stage_id] = offer
                    predecessors[stage_id] = edge.from_stage

    end_stage: str | None = None
    best = -1
    for stage_id in graph.nodes:
        total = distances[stage_id] + timeouts.get(stage_id, 0)
        if total > best:
            best = total
            end_stage = stage_id

    path: list[str] = []
    seen: set[str] = set()
    current = end_stage
    while current is not None and current not in seen:
        seen.add(current)
        path.insert(0, current)
        current = predecessors.get(current)
    return path


def _analyze_levels(levels: list[ExecutionLevel]) -> list[str]:
    warnings: list[str] = []
    if not levels:
        return warnings

    serial_levels = [level for level in levels if not level.can_run_in_parallel]
    if len(serial_levels) > MAX_SERIAL_LEVELS:
        warnings.append(
            f"Workflow has too many serial stages ({len(serial_levels)} levels); "
            "consider adding parallel processing"
        )

    widest = max(levels, key=lambda level: len(level.stages))
    if len(widest.stages) > MAX_PARALLEL_STAGES_PER_LEVEL:
        warnings.append(
            f"Level {widest.level} contains {len(widest.stages)} parallel stages, "
            "possible performance bottleneck"
        )

    total = sum(level.estimated_duration for level in levels)
    longest = max(level.estimated_duration for level in levels)
    if longest > total * LONG_LEVEL_SHARE:
        warnings.append("A stage takes too long relative to the workflow; consider splitting it")

    return warnings


def generate_execution_plan(
    workflow: WorkflowConfig, graph: DependencyGraph | None = None
) -> ExecutionPlan:
    """Build the level-by-level execution plan for ``workflow``.

    Args:
        workflow: Workflow to plan; callers should validate it first
        graph: Precomputed dependency graph, rebuilt when omitted
    """
    graph = graph or build_dependency_graph(workflow)
    stage_map = {stage.id: stage for stage in workflow.stages}

    levels: list[ExecutionLevel] = []
    for index, level_stages in enumerate(graph.levels):
        durations = [stage_map[s].timeout_ms for s in level_stages if s in stage_map]
        levels.append(
            ExecutionLevel(
                level=index + 1,
                stages=list(level_stages),
                can_run_in_parallel=len(level_stages) > 1,
                estimated_duration=max(durations, default=0),
                dependencies=_level_dependencies(level_stages, graph),
            )
        )

    plan = ExecutionPlan(
        total_stages=len(workflow.stages),
        estimated_duration=sum(level.estimated_duration for level in levels),
        execution_levels=levels,
        critical_path=find_critical_path(workflow, graph),
        warnings=_analyze_levels(levels),
    )
    logger.debug(
        "Planned workflow %s: %d levels, %d ms", workflow.id, len(levels), plan.estimated_duration
    )
    return plan
