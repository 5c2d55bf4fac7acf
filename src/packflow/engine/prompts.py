"""Prompt templates for coordinator planning, task execution, decisions and synthesis."""

from __future__ import annotations

import json
from typing import Any

from packflow.utils.validation import truncate_text

from .models import SYNTHESIS_KEY, EngineConfig, PlannedTask, TaskResult, WorkflowRequest

PLAN_FORMAT = """{
  "tasks": [
    {
      "id": "task-1",
      "name": "Short task name",
      "description": "What the agent should do",
      "agentId": "<specialist agent id>",
      "dependencies": [],
      "priority": "high|medium|low",
      "estimatedDuration": "30 minutes",
      "deliverables": ["..."]
    }
  ],
  "executionOrder": "sequential|parallel|mixed",
  "successCriteria": ["..."]
}"""

DECISION_FORMAT = """{
  "shouldExecute": true,
  "reason": "Why the task should or should not run",
  "modifications": {}
}"""


def _render(value: Any) -> str:
    if value is None:
        return "(none)"
    if isinstance(value, str):
        return truncate_text(value)
    try:
        return truncate_text(json.dumps(value, indent=2, default=str))
    except (TypeError, ValueError):
        return truncate_text(str(value))


def build_planning_prompt(config: EngineConfig, request: WorkflowRequest) -> str:
    """Ask the coordinator to break ``request`` into specialist tasks."""
    specialists = "\n".join(
        f"- {s.agent_id}: {s.specialty}" for s in config.specialists
    ) or "- (no specialists; assign tasks to yourself)"
    requirements = "\n".join(f"- {r}" for r in request.requirements) or "- (none)"

    return f"""You are coordinating a team of AI agents.

## Request
{request.description}

## Input
{_render(request.input)}

## Requirements
{requirements}

## Available specialists
{specialists}

## Execution
Mode: {config.mode.value}
Priority: {request.priority}

Break the request into concrete tasks, assign each to one specialist by id and
list the ids of the tasks each one depends on. Respond with a JSON object in
this format:

```json
{PLAN_FORMAT}
```"""


def build_task_prompt(
    task: PlannedTask,
    dependency_results: dict[str, TaskResult] | None = None,
    shared_context: dict[str, Any] | None = None,
) -> str:
    """Prompt for one task, with its dependencies' outputs and optional shared context."""
    sections = [f"## Task: {task.name or task.id}"]
    if task.description:
        sections.append(task.description)
    if task.inputs:
        sections.append(f"## Inputs\n{_render(task.inputs)}")
    if task.deliverables:
        sections.append("## Deliverables\n" + "\n".join(f"- {d}" for d in task.deliverables))

    if dependency_results:
        lines = []
        for dep_id, result in dependency_results.items():
            if result.skipped:
                lines.append(f"### {dep_id} (skipped)\n{result.reason or ''}")
            elif result.success:
                lines.append(f"### {dep_id}\n{_render(result.output)}")
            else:
                message = result.error.message if result.error else "unknown error"
                lines.append(f"### {dep_id} (failed)\n{message}")
        sections.append("## Results from previous tasks\n" + "\n\n".join(lines))

    if shared_context:
        sections.append(f"## Shared context\n{_render(shared_context)}")

    return "\n\n".join(sections)


def build_decision_prompt(task: PlannedTask, results: dict[str, TaskResult]) -> str:
    """Ask the coordinator whether ``task`` should still run."""
    progress = "\n".join(
        f"- {task_id}: {'skipped' if r.skipped else 'success' if r.success else 'failed'}"
        for task_id, r in results.items()
    ) or "- (nothing has run yet)"

    return f"""You are coordinating a multi-agent workflow and must decide on the next task.

## Progress so far
{progress}

## Next task
ID: {task.id}
Name: {task.name or task.id}
Agent: {task.agent_id}
Description: {task.description or '(none)'}
Inputs: {_render(task.inputs)}

Should this task run as planned? You may adjust its inputs through
"modifications". Respond with a JSON object:

```json
{DECISION_FORMAT}
```"""


def build_synthesis_prompt(request: WorkflowRequest | None, results: dict[str, TaskResult]) -> str:
    """Ask the coordinator for an executive summary of every task result."""
    blocks = []
    for task_id, result in results.items():
        if task_id == SYNTHESIS_KEY:
            continue
        status = "skipped" if result.skipped else "success" if result.success else "failed"
        body = _render(result.output) if result.success else (
            result.error.message if result.error else result.reason or ""
        )
        blocks.append(f"### {task_id} ({status})\n{body}")

    goal = f"## Original request\n{request.description}\n\n" if request else ""
    return (
        "Synthesize the results of a multi-agent workflow into an executive summary.\n\n"
        f"{goal}## Task results\n" + "\n\n".join(blocks) + "\n\n"
        "Summarize what was accomplished, highlight failures or gaps and give a final"
        " recommendation."
    )
