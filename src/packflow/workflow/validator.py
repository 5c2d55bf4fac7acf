"""Semantic workflow validation with a scored report.

Where the dependency validator answers "can this graph run at all", the
workflow validator reviews the whole configuration: naming, team
composition, stage content, timeouts, retry budgets and resource usage.
Each finding is a :class:`ValidationIssue`; the report carries a 0-100
quality score.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from packflow.errors import ConditionExpressionError

from .conditions import parse_condition_expression
from .dependencies import (
    CIRCULAR_DEPENDENCY,
    DUPLICATE_STAGE_ID,
    ORPHANED_STAGE,
    validate_dependencies,
)
from .models import AgentConfig, AgentRole, ConditionType, Stage, StageType, WorkflowConfig

logger = logging.getLogger(__name__)

# Thresholds (milliseconds unless noted)
MAX_NAME_LENGTH = 50
MIN_EXECUTION_TIME = 30_000
MAX_EXECUTION_TIME = 7_200_000
MAX_TEAM_SIZE = 10
MIN_STAGE_TIMEOUT = 10_000
MAX_STAGE_RETRIES = 5
MIN_TASK_TIMEOUT = 5_000
MAX_PARALLEL_TASKS = 5
HIGH_RESOURCE_PARALLEL_TASKS = 3

_PENALTIES = {"error": 20, "warning": 5, "info": 1}


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCategory(str, Enum):
    CONFIGURATION = "configuration"
    FLOW = "flow"
    AGENTS = "agents"
    PERFORMANCE = "performance"


@dataclass
class ValidationIssue:
    severity: Severity
    category: IssueCategory
    code: str
    message: str
    suggestion: str | None = None
    location: str | None = None

    def to_dict(self) -> dict:
        result = {
            "type": self.severity.value,
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.location:
            result["location"] = self.location
        return result


@dataclass
class ValidationSummary:
    errors: int = 0
    warnings: int = 0
    infos: int = 0

    def to_dict(self) -> dict:
        return {"errors": self.errors, "warnings": self.warnings, "infos": self.infos}


@dataclass
class WorkflowValidationResult:
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    score: int = 100
    summary: ValidationSummary = field(default_factory=ValidationSummary)

    def by_severity(self, severity: Severity) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "issues": [issue.to_dict() for issue in self.issues],
            "score": self.score,
            "summary": self.summary.to_dict(),
        }


def _error(category: IssueCategory, code: str, message: str, **kw) -> ValidationIssue:
    return ValidationIssue(Severity.ERROR, category, code, message, **kw)


def _warning(category: IssueCategory, code: str, message: str, **kw) -> ValidationIssue:
    return ValidationIssue(Severity.WARNING, category, code, message, **kw)


def _info(category: IssueCategory, code: str, message: str, **kw) -> ValidationIssue:
    return ValidationIssue(Severity.INFO, category, code, message, **kw)


class WorkflowValidator:
    """Runs every workflow check and scores the result."""

    def validate(
        self, workflow: WorkflowConfig, agents: list[AgentConfig]
    ) -> WorkflowValidationResult:
        issues: list[ValidationIssue] = []
        issues.extend(self._validate_basic_config(workflow))
        issues.extend(self._validate_agent_team(workflow, agents))
        issues.extend(self._validate_execution_flow(workflow, agents))
        issues.extend(self._validate_performance(workflow))
        issues.extend(self._validate_dependencies(workflow))

        summary = ValidationSummary(
            errors=sum(1 for i in issues if i.severity == Severity.ERROR),
            warnings=sum(1 for i in issues if i.severity == Severity.WARNING),
            infos=sum(1 for i in issues if i.severity == Severity.INFO),
        )
        result = WorkflowValidationResult(
            is_valid=summary.errors == 0,
            issues=issues,
            score=self.calculate_score(issues),
            summary=summary,
        )
        logger.debug(
            "Validated workflow %s: score=%d errors=%d warnings=%d",
            workflow.id,
            result.score,
            summary.errors,
            summary.warnings,
        )
        return result

    @staticmethod
    def calculate_score(issues: list[ValidationIssue]) -> int:
        penalty = sum(_PENALTIES[issue.severity.value] for issue in issues)
        return max(0, min(100, 100 - penalty))

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _validate_basic_config(self, workflow: WorkflowConfig) -> list[ValidationIssue]:
        issues = []
        cfg = IssueCategory.CONFIGURATION

        if not workflow.name or not workflow.name.strip():
            issues.append(
                _error(
                    cfg,
                    "MISSING_NAME",
                    "Workflow name must not be empty",
                    suggestion="Give the workflow a meaningful name",
                )
            )
        elif len(workflow.name) > MAX_NAME_LENGTH:
            issues.append(
                _warning(
                    cfg,
                    "LONG_NAME",
                    f"Workflow name is longer than {MAX_NAME_LENGTH} characters",
                    suggestion="Shorten the name to keep it readable",
                )
            )

        if not workflow.description or not workflow.description.strip():
            issues.append(
                _warning(
                    cfg,
                    "MISSING_DESCRIPTION",
                    "Workflow has no description",
                    suggestion="Describe what the workflow is for",
                )
            )

        max_time = workflow.configuration.max_execution_time
        if max_time < MIN_EXECUTION_TIME:
            issues.append(
                _warning(
                    cfg,
                    "SHORT_TIMEOUT",
                    "Maximum execution time is short; tasks may be cut off early",
                    suggestion="Allow at least 30 seconds",
                )
            )
        if max_time > MAX_EXECUTION_TIME:
            issues.append(
                _warning(
                    IssueCategory.PERFORMANCE,
                    "LONG_TIMEOUT",
                    "Maximum execution time exceeds 2 hours",
                    suggestion="Split long work into shorter stages",
                )
            )
        return issues

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def _validate_agent_team(
        self, workflow: WorkflowConfig, agents: list[AgentConfig]
    ) -> list[ValidationIssue]:
        issues = []
        cat = IssueCategory.AGENTS
        roster = workflow.agent_ids
        known = {agent.id: agent for agent in agents}

        if not roster:
            issues.append(
                _error(
                    cat,
                    "NO_AGENTS",
                    "Workflow must include at least one agent",
                    suggestion="Add agents to the workflow team",
                )
            )
        if len(roster) > MAX_TEAM_SIZE:
            issues.append(
                _warning(
                    IssueCategory.PERFORMANCE,
                    "TOO_MANY_AGENTS",
                    f"Team has {len(roster)} agents; coordination may suffer",
                    suggestion="Reduce the team size",
                )
            )

        if roster and not workflow.main_agent_id:
            issues.append(
                _error(
                    cat,
                    "NO_MAIN_AGENT",
                    "A main agent must be selected",
                    suggestion="Pick a team member to coordinate the workflow",
                )
            )
        if workflow.main_agent_id and workflow.main_agent_id not in roster:
            issues.append(
                _error(
                    cat,
                    "INVALID_MAIN_AGENT",
                    f"Main agent {workflow.main_agent_id} is not a team member",
                    suggestion="Choose the main agent from the team",
                )
            )

        missing = [agent_id for agent_id in roster if agent_id not in known]
        if missing:
            issues.append(
                _error(
                    cat,
                    "MISSING_AGENTS",
                    f"Agents not found: {', '.join(missing)}",
                    suggestion="Remove them from the team or create them",
                )
            )

        team = [known[agent_id] for agent_id in roster if agent_id in known]
        roles = Counter(agent.role for agent in team)
        if len(team) > 1 and roles[AgentRole.MAIN] > 1:
            issues.append(
                _warning(
                    cat,
                    "MULTIPLE_MAIN_AGENTS",
                    "More than one agent has the main role",
                    suggestion="Keep a single main agent to avoid conflicting plans",
                )
            )
        if len(team) > 2 and not roles[AgentRole.SYNTHESIS]:
            issues.append(
                _info(
                    cat,
                    "NO_SYNTHESIS_AGENT",
                    "No synthesis agent in a team of more than two",
                    suggestion="Add an agent that consolidates results",
                )
            )
        return issues

    # ------------------------------------------------------------------
    # Execution flow
    # ------------------------------------------------------------------

    def _validate_execution_flow(
        self, workflow: WorkflowConfig, agents: list[AgentConfig]
    ) -> list[ValidationIssue]:
        flow = workflow.execution_flow
        if not flow.stages:
            return [
                _warning(
                    IssueCategory.FLOW,
                    "NO_EXECUTION_STAGES",
                    "Workflow has no execution stages",
                    suggestion="Add at least one stage",
                )
            ]

        agent_ids = {agent.id for agent in agents}
        issues = []
        for index, stage in enumerate(flow.stages):
            issues.extend(self._validate_stage(stage, index, agent_ids))

        structural = validate_dependencies(workflow)
        for dep_issue in structural.errors:
            location = f"dependency-{dep_issue.index}" if dep_issue.index is not None else None
            suggestion = None
            if dep_issue.code == CIRCULAR_DEPENDENCY:
                suggestion = "Remove one edge of the cycle"
            elif dep_issue.code == DUPLICATE_STAGE_ID:
                suggestion = "Give every stage a unique id"
            issues.append(
                _error(
                    IssueCategory.FLOW,
                    dep_issue.code,
                    dep_issue.message,
                    suggestion=suggestion,
                    location=location,
                )
            )

        for index, dep in enumerate(flow.dependencies):
            if dep.condition.type != ConditionType.CUSTOM:
                continue
            try:
                parse_condition_expression(dep.condition.custom_expression or "")
            except ConditionExpressionError as exc:
                issues.append(
                    _error(
                        IssueCategory.FLOW,
                        "INVALID_CONDITION",
                        f"Dependency {dep.from_stage} -> {dep.to_stage}: {exc.message}",
                        suggestion="Use comparisons and &&, || over success, output, results",
                        location=f"dependency-{index}",
                    )
                )
        return issues

    def _validate_stage(
        self, stage: Stage, index: int, agent_ids: set[str]
    ) -> list[ValidationIssue]:
        issues = []
        location = f"stage-{index}"
        flow, perf = IssueCategory.FLOW, IssueCategory.PERFORMANCE

        if not stage.name or not stage.name.strip():
            issues.append(
                _error(flow, "MISSING_STAGE_NAME", "Stage has no name", location=location)
            )
        if not stage.tasks:
            issues.append(
                _warning(
                    flow,
                    "EMPTY_STAGE",
                    f"Stage {stage.id} has no tasks",
                    suggestion="Add a task or remove the stage",
                    location=location,
                )
            )
        if stage.timeout_ms < MIN_STAGE_TIMEOUT:
            issues.append(
                _warning(
                    perf,
                    "SHORT_STAGE_TIMEOUT",
                    f"Stage {stage.id} timeout is under 10 seconds",
                    location=location,
                )
            )
        if stage.retry_policy.max_retries > MAX_STAGE_RETRIES:
            issues.append(
                _warning(
                    perf,
                    "EXCESSIVE_RETRIES",
                    f"Stage {stage.id} retries more than {MAX_STAGE_RETRIES} times",
                    suggestion="Lower max retries to limit cost",
                    location=location,
                )
            )

        for task_index, task in enumerate(stage.tasks):
            task_location = f"{location}-task-{task_index}"
            if task.agent_id not in agent_ids:
                issues.append(
                    _error(
                        flow,
                        "MISSING_TASK_AGENT",
                        f"Task {task.id} references unknown agent {task.agent_id or '(none)'}",
                        location=task_location,
                    )
                )
            if task.timeout < MIN_TASK_TIMEOUT:
                issues.append(
                    _warning(
                        perf,
                        "SHORT_TASK_TIMEOUT",
                        f"Task {task.id} timeout is under 5 seconds",
                        location=task_location,
                    )
                )

        if stage.type == StageType.PARALLEL and len(stage.tasks) > MAX_PARALLEL_TASKS:
            issues.append(
                _warning(
                    perf,
                    "HIGH_PARALLELISM",
                    f"Stage {stage.id} runs {len(stage.tasks)} tasks in parallel",
                    suggestion="Split the stage to reduce concurrent load",
                    location=location,
                )
            )
        return issues

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------

    def _validate_performance(self, workflow: WorkflowConfig) -> list[ValidationIssue]:
        stages = workflow.stages
        if not stages:
            return []

        issues = []
        perf = IssueCategory.PERFORMANCE
        estimated = sum(stage.timeout_ms for stage in stages)
        if estimated > workflow.configuration.max_execution_time:
            issues.append(
                _warning(
                    perf,
                    "EXECUTION_TIME_MISMATCH",
                    f"Stage timeouts add up to {estimated} ms, above the "
                    f"{workflow.configuration.max_execution_time} ms limit",
                    suggestion="Raise the execution limit or shorten stage timeouts",
                )
            )

        widest = max(
            (len(s.tasks) for s in stages if s.type == StageType.PARALLEL), default=0
        )
        if widest > HIGH_RESOURCE_PARALLEL_TASKS:
            issues.append(
                _info(
                    perf,
                    "HIGH_RESOURCE_USAGE",
                    f"Up to {widest} tasks run concurrently",
                    suggestion="Watch provider rate limits",
                )
            )
        return issues

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def _validate_dependencies(self, workflow: WorkflowConfig) -> list[ValidationIssue]:
        issues = []
        flow = IssueCategory.FLOW
        stages = workflow.stages
        if len(stages) > 1 and not workflow.dependencies:
            issues.append(
                _info(
                    flow,
                    "NO_DEPENDENCIES",
                    "Stages have no dependencies; they will all run on the first level",
                    suggestion="Add dependencies to express ordering",
                )
            )

        orphans = [
            issue.stages[0]
            for issue in validate_dependencies(workflow).warnings
            if issue.code == ORPHANED_STAGE
        ]
        if orphans:
            issues.append(
                _warning(
                    flow,
                    "ORPHANED_STAGES",
                    f"Stages without dependencies: {', '.join(orphans)}",
                    suggestion="Connect them to the flow or remove them",
                )
            )
        return issues


def validate_workflow(
    workflow: WorkflowConfig, agents: list[AgentConfig]
) -> WorkflowValidationResult:
    """Validate ``workflow`` against the given agent roster."""
    return WorkflowValidator().validate(workflow, agents)
