"""Dependency optimization: transitive reduction and parallelization hints."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from .graph import DependencyGraph, build_dependency_graph
from .models import StageDependency, WorkflowConfig

logger = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    """Outcome of :func:`optimize_dependencies`.

    Attributes:
        workflow: Optimized copy; the input workflow is left untouched
        removed: Edges dropped as transitively implied
        suggestions: Stage pairs that might be able to run in parallel
        notes: Human-readable summary lines
    """

    workflow: WorkflowConfig
    removed: list[StageDependency] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed)


def _has_indirect_path(source: str, target: str, edges: list[StageDependency]) -> bool:
    """True if ``target`` is reachable from ``source`` via at least one other stage."""
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        if edge.from_stage != edge.to_stage:
            adjacency[edge.from_stage].append(edge.to_stage)

    stack = [node for node in adjacency.get(source, []) if node not in (source, target)]
    visited: set[str] = {source}
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        for neighbor in adjacency.get(current, []):
            if neighbor == target:
                return True
            if neighbor not in visited:
                stack.append(neighbor)
    return False


def find_redundant_dependencies(workflow: WorkflowConfig) -> list[StageDependency]:
    """Edges implied by another path through at least one intermediate stage.

    Edges are examined in declaration order against the edges still kept,
    so applying the result leaves nothing redundant for a second pass.
    """
    kept = list(workflow.execution_flow.dependencies)
    redundant: list[StageDependency] = []
    for edge in list(kept):
        if edge.from_stage == edge.to_stage:
            continue
        others = [e for e in kept if e is not edge]
        if _has_indirect_path(edge.from_stage, edge.to_stage, others):
            redundant.append(edge)
            kept.remove(edge)
    return redundant


def find_parallelization_opportunities(
    workflow: WorkflowConfig, graph: DependencyGraph | None = None
) -> list[str]:
    """Adjacent single-stage levels with no direct edge between them.

    This is a hint only; indirect coupling through other levels is not
    checked.
    """
    graph = graph or build_dependency_graph(workflow)
    direct = {edge.key for edge in graph.edges}
    opportunities: list[str] = []
    for current, following in zip(graph.levels, graph.levels[1:], strict=False):
        if len(current) == 1 and len(following) == 1:
            if (current[0], following[0]) not in direct:
                opportunities.append(
                    f"Stages {current[0]} and {following[0]} may be able to run in parallel"
                )
    return opportunities


def optimize_dependencies(workflow: WorkflowConfig) -> OptimizationResult:
    """Remove redundant edges and collect parallelization hints.

    Returns an :class:`OptimizationResult` holding a deep copy of the
    workflow; ``updated_at`` on the copy is refreshed only when edges were
    actually removed.
    """
    optimized = workflow.copy()
    redundant = find_redundant_dependencies(optimized)
    notes: list[str] = []

    if redundant:
        drop = {id(edge) for edge in redundant}
        optimized.execution_flow.dependencies = [
            edge for edge in optimized.execution_flow.dependencies if id(edge) not in drop
        ]
        optimized.touch()
        notes.append(f"Removed {len(redundant)} redundant dependencies")
        logger.info("Removed %d redundant dependencies from %s", len(redundant), workflow.id)

    suggestions = find_parallelization_opportunities(optimized)
    if suggestions:
        notes.append(f"Found {len(suggestions)} parallelization opportunities")

    return OptimizationResult(
        workflow=optimized, removed=redundant, suggestions=suggestions, notes=notes
    )
