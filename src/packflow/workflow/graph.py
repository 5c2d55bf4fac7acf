"""Dependency graph construction and topological leveling.

Stages become nodes, ``StageDependency`` records become edges, and Kahn's
algorithm assigns every stage to an execution level. Stages on the same
level have no edges between them and may run concurrently once every
earlier level has finished.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import StageDependency, WorkflowConfig

logger = logging.getLogger(__name__)


def topological_levels(
    nodes: Iterable[str], edges: Iterable[tuple[str, str]]
) -> list[list[str]]:
    """Group ``nodes`` into dependency levels using Kahn's algorithm.

    Edges whose endpoints are not in ``nodes`` are ignored. Members of a
    level keep the input node order. If the edges contain a cycle, every
    node that could not be leveled is placed into one final level; callers
    are expected to reject such graphs through validation.

    Args:
        nodes: Node ids in their natural order
        edges: ``(from_id, to_id)`` pairs; ``to_id`` runs after ``from_id``

    Returns:
        Ordered list of levels, each a list of node ids
    """
    order = list(dict.fromkeys(nodes))
    known = set(order)
    in_degree: dict[str, int] = {node: 0 for node in order}
    successors: dict[str, list[str]] = defaultdict(list)

    for source, target in edges:
        if source not in known or target not in known:
            continue
        in_degree[target] += 1
        successors[source].append(target)

    levels: list[list[str]] = []
    remaining = list(order)
    while remaining:
        ready = [node for node in remaining if in_degree[node] == 0]
        if not ready:
            logger.debug("Cycle detected while leveling; %d nodes unresolved", len(remaining))
            levels.append(remaining)
            break

        levels.append(ready)
        ready_set = set(ready)
        remaining = [node for node in remaining if node not in ready_set]
        for node in ready:
            for successor in successors[node]:
                in_degree[successor] -= 1

    return levels


@dataclass
class DependencyGraph:
    """Leveled DAG of workflow stages.

    Attributes:
        nodes: Stage ids in workflow order
        edges: Dependency edges as declared (including invalid ones)
        levels: Stage ids grouped by execution level
    """

    nodes: list[str] = field(default_factory=list)
    edges: list[StageDependency] = field(default_factory=list)
    levels: list[list[str]] = field(default_factory=list)

    def _valid_edges(self) -> list[StageDependency]:
        known = set(self.nodes)
        return [e for e in self.edges if e.from_stage in known and e.to_stage in known]

    def level_of(self, stage_id: str) -> int | None:
        """Return the 0-based level index of a stage."""
        for index, level in enumerate(self.levels):
            if stage_id in level:
                return index
        return None

    def predecessors(self, stage_id: str) -> list[str]:
        return list(
            dict.fromkeys(e.from_stage for e in self._valid_edges() if e.to_stage == stage_id)
        )

    def successors(self, stage_id: str) -> list[str]:
        return list(
            dict.fromkeys(e.to_stage for e in self._valid_edges() if e.from_stage == stage_id)
        )

    def incoming(self, stage_id: str) -> list[StageDependency]:
        return [e for e in self._valid_edges() if e.to_stage == stage_id]

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> dict:
        return {
            "nodes": list(self.nodes),
            "edges": [e.to_dict() for e in self.edges],
            "levels": [list(level) for level in self.levels],
        }


def build_dependency_graph(workflow: WorkflowConfig) -> DependencyGraph:
    """Build the leveled dependency graph for a workflow.

    Never raises: cycles end up in a trailing synthetic level and invalid
    references are carried in ``edges`` but ignored for leveling.
    """
    nodes = workflow.stage_ids()
    edges = list(workflow.execution_flow.dependencies)
    levels = topological_levels(nodes, (e.key for e in edges))
    return DependencyGraph(nodes=nodes, edges=edges, levels=levels)
