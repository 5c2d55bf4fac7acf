"""Structural validation of stage dependencies."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Iterator
from dataclasses import dataclass, field

from .models import WorkflowConfig

logger = logging.getLogger(__name__)

INVALID_DEPENDENCY_SOURCE = "INVALID_DEPENDENCY_SOURCE"
INVALID_DEPENDENCY_TARGET = "INVALID_DEPENDENCY_TARGET"
SELF_DEPENDENCY = "SELF_DEPENDENCY"
CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
ORPHANED_STAGE = "ORPHANED_STAGE"
DUPLICATE_STAGE_ID = "DUPLICATE_STAGE_ID"


@dataclass
class DependencyIssue:
    """One finding of the dependency validator."""

    code: str
    message: str
    index: int | None = None
    stages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "index": self.index,
            "stages": list(self.stages),
        }


@dataclass
class DependencyValidationResult:
    is_valid: bool
    errors: list[DependencyIssue] = field(default_factory=list)
    warnings: list[DependencyIssue] = field(default_factory=list)

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.errors]

    @property
    def warning_messages(self) -> list[str]:
        return [issue.message for issue in self.warnings]

    def has_code(self, code: str) -> bool:
        return any(issue.code == code for issue in self.errors + self.warnings)

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _find_cycles(nodes: list[str], edges: list[tuple[str, str]]) -> list[list[str]]:
    """DFS with a recursion stack; returns each back-edge cycle as a closed path.

    The walk keeps its own stack of ``(node, neighbor iterator)`` frames so
    long chains do not hit the interpreter's recursion limit.
    """
    adjacency: dict[str, list[str]] = defaultdict(list)
    for source, target in edges:
        adjacency[source].append(target)

    cycles: list[list[str]] = []
    visited: set[str] = set()
    rec_stack: set[str] = set()
    path: list[str] = []

    def enter(node_id: str) -> tuple[str, Iterator[str]]:
        visited.add(node_id)
        rec_stack.add(node_id)
        path.append(node_id)
        return node_id, iter(adjacency.get(node_id, ()))

    for root in nodes:
        if root in visited:
            continue
        frames = [enter(root)]
        while frames:
            node_id, neighbors = frames[-1]
            for next_id in neighbors:
                if next_id not in visited:
                    frames.append(enter(next_id))
                    break
                if next_id in rec_stack:
                    cycle_start = path.index(next_id)
                    cycles.append(path[cycle_start:] + [next_id])
            else:
                frames.pop()
                path.pop()
                rec_stack.remove(node_id)

    return cycles


def validate_dependencies(workflow: WorkflowConfig) -> DependencyValidationResult:
    """Classify a workflow's dependency edges.

    Checks run in order: duplicate stage ids, unknown edge endpoints,
    self-loops, cycles (DFS over the remaining edges) and, for multi-stage
    workflows, stages not touched by any edge. Only the last produces
    warnings. Dependencies are numbered from 1 in messages; ``index`` on
    each issue stays the 0-based list position. The workflow is never
    modified.
    """
    all_ids = workflow.stage_ids()
    stage_ids = list(dict.fromkeys(all_ids))
    known = set(stage_ids)
    errors: list[DependencyIssue] = []
    warnings: list[DependencyIssue] = []
    dag_edges: list[tuple[str, str]] = []

    for stage_id, count in Counter(all_ids).items():
        if count > 1:
            errors.append(
                DependencyIssue(
                    code=DUPLICATE_STAGE_ID,
                    message=f"Stage id '{stage_id}' is used by {count} stages",
                    stages=[stage_id],
                )
            )

    for index, dep in enumerate(workflow.execution_flow.dependencies):
        label = f"Dependency #{index + 1}"
        endpoints_valid = True
        if dep.from_stage not in known:
            endpoints_valid = False
            errors.append(
                DependencyIssue(
                    code=INVALID_DEPENDENCY_SOURCE,
                    message=f"{label}: source stage '{dep.from_stage}' does not exist",
                    index=index,
                    stages=[dep.from_stage],
                )
            )
        if dep.to_stage not in known:
            endpoints_valid = False
            errors.append(
                DependencyIssue(
                    code=INVALID_DEPENDENCY_TARGET,
                    message=f"{label}: target stage '{dep.to_stage}' does not exist",
                    index=index,
                    stages=[dep.to_stage],
                )
            )
        if not endpoints_valid:
            continue

        if dep.from_stage == dep.to_stage:
            errors.append(
                DependencyIssue(
                    code=SELF_DEPENDENCY,
                    message=f"{label}: stage '{dep.from_stage}' depends on itself",
                    index=index,
                    stages=[dep.from_stage],
                )
            )
            continue

        dag_edges.append(dep.key)

    for cycle in _find_cycles(stage_ids, dag_edges):
        errors.append(
            DependencyIssue(
                code=CIRCULAR_DEPENDENCY,
                message=f"Circular dependency detected: {' -> '.join(cycle)}",
                stages=cycle[:-1],
            )
        )

    if len(stage_ids) > 1:
        touched: set[str] = set()
        for dep in workflow.execution_flow.dependencies:
            touched.add(dep.from_stage)
            touched.add(dep.to_stage)
        for stage_id in stage_ids:
            if stage_id not in touched:
                warnings.append(
                    DependencyIssue(
                        code=ORPHANED_STAGE,
                        message=f"Stage '{stage_id}' has no dependencies and nothing depends on it",
                        stages=[stage_id],
                    )
                )

    if errors:
        logger.debug("Workflow %s has %d dependency errors", workflow.id, len(errors))

    return DependencyValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
