"""Turning coordinator output or workflow stages into a :class:`TaskPlan`."""

from __future__ import annotations

import logging
import re
import uuid
from collections import defaultdict

from packflow.config.settings import Settings
from packflow.errors import ValidationError
from packflow.workflow.graph import DependencyGraph, build_dependency_graph
from packflow.workflow.models import RetryPolicy, StageType, WorkflowConfig

from .extraction import PlanPayload
from .models import EngineConfig, PlannedTask, TaskPlan, WorkflowRequest

logger = logging.getLogger(__name__)

_DURATION = re.compile(
    r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|minutes?|mins?|m|seconds?|secs?|s)\b",
    re.IGNORECASE,
)
_UNIT_MS = {"h": 3_600_000, "m": 60_000, "s": 1_000}


def parse_duration(text: str | None, default_ms: int) -> int:
    """Milliseconds for estimates like ``"90 seconds"``, ``"30 min"`` or ``"2h"``."""
    if not text:
        return default_ms
    match = _DURATION.search(text)
    if not match:
        return default_ms
    amount = float(match.group(1))
    return int(amount * _UNIT_MS[match.group(2)[0].lower()])


def _plan_id() -> str:
    return f"plan-{uuid.uuid4().hex[:12]}"


def create_default_plan(
    config: EngineConfig, request: WorkflowRequest, settings: Settings
) -> TaskPlan:
    """One chained task per specialist, used when the coordinator's plan is unusable."""
    assignees = [(s.agent_id, s.specialty) for s in config.specialists]
    if not assignees and config.coordinator_id:
        assignees = [(config.coordinator_id, "general")]

    tasks: list[PlannedTask] = []
    for index, (agent_id, specialty) in enumerate(assignees, start=1):
        tasks.append(
            PlannedTask(
                id=f"task-{index}",
                name=f"{specialty} work",
                description=f"Execute {specialty} tasks for: {request.description}",
                agent_id=agent_id,
                task_type=config.task_type_for(agent_id),
                inputs=request.input if request.input is not None else {},
                dependencies=[tasks[-1].id] if tasks else [],
                estimated_duration="30 minutes",
                timeout=settings.default_plan_task_timeout_ms,
            )
        )

    return TaskPlan(
        id=_plan_id(),
        tasks=tasks,
        dependencies=TaskPlan.build_dependencies(tasks),
        estimated_duration=len(tasks) * settings.default_task_estimate_ms,
        success_criteria=["All tasks completed successfully"],
        created_by=config.coordinator_id,
        source="default",
    )


def order_tasks(tasks: list[PlannedTask]) -> list[PlannedTask] | None:
    """Stable topological order of ``tasks``, or ``None`` if they form a cycle.

    Among ready tasks the earliest declared one goes first.
    """
    remaining = list(tasks)
    placed: set[str] = set()
    ordered: list[PlannedTask] = []
    while remaining:
        ready = next((t for t in remaining if all(d in placed for d in t.dependencies)), None)
        if ready is None:
            return None
        ordered.append(ready)
        placed.add(ready.id)
        remaining.remove(ready)
    return ordered


def plan_from_payload(
    payload: PlanPayload,
    config: EngineConfig,
    request: WorkflowRequest,
    settings: Settings,
) -> TaskPlan | None:
    """Build a plan from the coordinator's parsed JSON.

    Returns ``None`` when the payload cannot be scheduled (duplicate ids or
    a dependency cycle), so the caller can fall back to the default plan.
    """
    ids = [t.id for t in payload.tasks]
    if len(set(ids)) != len(ids):
        logger.warning("Coordinator plan has duplicate task ids")
        return None
    known = set(ids)

    retry_policy = None
    if settings.default_max_retries > 0:
        retry_policy = RetryPolicy(max_retries=settings.default_max_retries)

    tasks: list[PlannedTask] = []
    for item in payload.tasks:
        dependencies = [d for d in item.dependencies if d in known and d != item.id]
        dropped = set(item.dependencies) - set(dependencies)
        if dropped:
            logger.warning("Task %s: ignoring unknown dependencies %s", item.id, sorted(dropped))

        inputs = item.inputs
        if not inputs and request.input is not None:
            inputs = {"input": request.input}
        tasks.append(
            PlannedTask(
                id=item.id,
                name=item.name,
                description=item.description,
                agent_id=item.agent_id,
                task_type=config.task_type_for(item.agent_id),
                inputs=inputs,
                dependencies=dependencies,
                priority=item.priority,
                estimated_duration=item.estimated_duration,
                deliverables=item.deliverables,
                timeout=settings.default_task_timeout_ms,
                retry_policy=retry_policy,
            )
        )

    ordered = order_tasks(tasks)
    if ordered is None:
        logger.warning("Coordinator plan has a dependency cycle")
        return None

    return TaskPlan(
        id=_plan_id(),
        tasks=ordered,
        dependencies=TaskPlan.build_dependencies(ordered),
        estimated_duration=sum(
            parse_duration(t.estimated_duration, settings.default_task_estimate_ms)
            for t in ordered
        ),
        success_criteria=payload.criteria(),
        created_by=config.coordinator_id,
        source="coordinator",
    )


def plan_from_workflow(
    workflow: WorkflowConfig, graph: DependencyGraph | None = None
) -> TaskPlan:
    """Flatten stages into tasks, level by level.

    Tasks of a sequential stage are chained; every task depends on the
    tasks that close each predecessor stage. A stage without tasks passes
    its own predecessors through, so ordering survives empty stages.

    Raises:
        ValidationError: If two stages or two tasks share an id
    """
    stage_ids = workflow.stage_ids()
    repeated = sorted({stage_id for stage_id in stage_ids if stage_ids.count(stage_id) > 1})
    if repeated:
        raise ValidationError(
            f"Stage ids must be unique: {', '.join(repeated)}",
            {"duplicates": repeated},
        )
    graph = graph or build_dependency_graph(workflow)
    stage_map = {stage.id: stage for stage in workflow.stages}

    all_ids = [task.id for stage in workflow.stages for task in stage.tasks]
    duplicates = sorted({task_id for task_id in all_ids if all_ids.count(task_id) > 1})
    if duplicates:
        raise ValidationError(
            f"Task ids must be unique across stages: {', '.join(duplicates)}",
            {"duplicates": duplicates},
        )
    known = set(all_ids)

    exits: dict[str, list[str]] = defaultdict(list)
    tasks: list[PlannedTask] = []
    for level in graph.levels:
        for stage_id in level:
            stage = stage_map[stage_id]
            upstream: list[str] = []
            for predecessor in graph.predecessors(stage_id):
                if predecessor != stage_id:
                    upstream.extend(exits[predecessor])
            upstream = list(dict.fromkeys(upstream))

            if not stage.tasks:
                exits[stage_id] = upstream
                continue

            previous: str | None = None
            for task in stage.tasks:
                dependencies = list(upstream)
                if stage.type == StageType.SEQUENTIAL and previous:
                    dependencies.append(previous)
                dependencies.extend(d for d in task.dependencies if d in known and d != task.id)
                tasks.append(
                    PlannedTask(
                        id=task.id,
                        name=task.name or f"{stage.name or stage.id}: {task.id}",
                        description=task.description,
                        agent_id=task.agent_id,
                        task_type=task.task_type,
                        inputs=task.inputs,
                        dependencies=list(dict.fromkeys(dependencies)),
                        priority=task.priority or "medium",
                        timeout=task.timeout,
                        stage_id=stage.id,
                        retry_policy=stage.retry_policy,
                    )
                )
                previous = task.id

            if stage.type == StageType.SEQUENTIAL:
                exits[stage_id] = [previous] if previous else []
            else:
                exits[stage_id] = [task.id for task in stage.tasks]

    # Task-local dependencies may point forward within a level.
    ordered = order_tasks(tasks) or tasks
    estimated = sum(
        max((stage_map[s].timeout_ms for s in level), default=0) for level in graph.levels
    )
    return TaskPlan(
        id=_plan_id(),
        tasks=ordered,
        dependencies=TaskPlan.build_dependencies(ordered),
        estimated_duration=estimated,
        created_by=workflow.main_agent_id,
        source="workflow",
        stage_dependencies=list(workflow.dependencies),
    )
