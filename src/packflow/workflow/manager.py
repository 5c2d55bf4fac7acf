"""Facade bundling the design-time dependency tools for one workflow."""

from __future__ import annotations

from .dependencies import DependencyValidationResult, validate_dependencies
from .graph import DependencyGraph, build_dependency_graph
from .models import DependencyCondition, StageDependency, WorkflowConfig
from .optimizer import OptimizationResult, optimize_dependencies
from .planner import ExecutionPlan, generate_execution_plan


class DependencyManager:
    """Graph, validation, planning and optimization over one workflow.

    The dependency graph is cached and rebuilt whenever the workflow's
    ``metadata.updated_at`` or the stage/edge structure changes.
    """

    def __init__(self, workflow: WorkflowConfig):
        self.workflow = workflow
        self._graph: DependencyGraph | None = None
        self._graph_key: tuple | None = None

    @property
    def graph(self) -> DependencyGraph:
        key = self._structure_key()
        if self._graph is None or self._graph_key != key:
            self._graph = build_dependency_graph(self.workflow)
            self._graph_key = key
        return self._graph

    def _structure_key(self) -> tuple:
        return (
            self.workflow.metadata.updated_at,
            tuple(self.workflow.stage_ids()),
            tuple(dep.key for dep in self.workflow.dependencies),
        )

    def validate(self) -> DependencyValidationResult:
        return validate_dependencies(self.workflow)

    def plan(self) -> ExecutionPlan:
        return generate_execution_plan(self.workflow, self.graph)

    def optimize(self, apply: bool = False) -> OptimizationResult:
        """Compute optimizations; with ``apply`` the optimized copy replaces the workflow."""
        result = optimize_dependencies(self.workflow)
        if apply and result.changed:
            self.workflow = result.workflow
        return result

    def add_dependency(
        self,
        from_stage: str,
        to_stage: str,
        condition: DependencyCondition | str | dict | None = None,
    ) -> StageDependency:
        return self.workflow.add_dependency(from_stage, to_stage, condition)

    def remove_dependency(self, from_stage: str, to_stage: str) -> bool:
        return self.workflow.remove_dependency(from_stage, to_stage)
