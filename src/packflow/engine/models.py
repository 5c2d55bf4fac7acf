"""Pydantic models for engine runs: requests, plans, results and records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from packflow.workflow.models import (
    AgentConfig,
    AgentRole,
    RetryPolicy,
    StageDependency,
    TaskType,
    WorkflowConfig,
    utcnow,
)
from packflow.workflow.planner import ExecutionPlan

SYNTHESIS_KEY = "_synthesis"


class ExecutionMode(str, Enum):
    """How the tasks of a plan are dispatched."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ADAPTIVE = "adaptive"


class RunStatus(str, Enum):
    """Lifecycle state of one engine run."""

    PENDING = "pending"
    PLANNING = "planning"
    CONFIRMED = "confirmed"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class DependencyFailurePolicy(str, Enum):
    """What to do with a task whose dependency failed."""

    CONTINUE = "continue"
    SKIP = "skip"
    ABORT = "abort"


class ExecutionOptions(BaseModel):
    """Per-engine execution switches."""

    shared_context: bool = True
    cross_session_sharing: bool = False
    result_synthesis: bool = False
    auto_retry: bool = False
    on_dependency_failure: DependencyFailurePolicy = DependencyFailurePolicy.CONTINUE


class Specialist(BaseModel):
    agent_id: str
    specialty: str = "general"


class EngineConfig(BaseModel):
    """Team and mode configuration for a :class:`WorkflowEngine`."""

    id: str
    name: str = ""
    description: str = ""
    coordinator_id: str | None = None
    specialists: list[Specialist] = Field(default_factory=list)
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    execution: ExecutionOptions = Field(default_factory=ExecutionOptions)

    @classmethod
    def from_workflow(
        cls,
        workflow: WorkflowConfig,
        agents: list[AgentConfig] | None = None,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
        execution: ExecutionOptions | None = None,
    ) -> EngineConfig:
        """Derive the team from a workflow roster.

        The main agent becomes the coordinator; every other roster member is
        a specialist labelled with its ``specialty`` (or its role).
        """
        by_id = {agent.id: agent for agent in agents or []}
        specialists = []
        for agent_id in workflow.agent_ids:
            if agent_id == workflow.main_agent_id:
                continue
            agent = by_id.get(agent_id)
            if agent is None:
                specialty = "general"
            else:
                specialty = agent.specialty or agent.role.value
            specialists.append(Specialist(agent_id=agent_id, specialty=specialty))

        if execution is None:
            execution = ExecutionOptions(auto_retry=workflow.configuration.auto_retry)
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            coordinator_id=workflow.main_agent_id,
            specialists=specialists,
            mode=mode,
            execution=execution,
        )

    def specialist_for(self, agent_id: str) -> Specialist | None:
        for specialist in self.specialists:
            if specialist.agent_id == agent_id:
                return specialist
        return None

    def task_type_for(self, agent_id: str, role: AgentRole | None = None) -> TaskType:
        """Classify a task by the agent that runs it."""
        if agent_id == self.coordinator_id:
            return TaskType.MAIN_PLANNING
        specialist = self.specialist_for(agent_id)
        if role == AgentRole.SYNTHESIS or (specialist and specialist.specialty == "synthesis"):
            return TaskType.SYNTHESIS
        return TaskType.SUB_EXECUTION


class WorkflowRequest(BaseModel):
    """What the caller wants the team to do."""

    description: str
    input: Any = None
    requirements: list[str] = Field(default_factory=list)
    priority: Literal["low", "normal", "high"] = "normal"
    require_confirmation: bool = False
    timeout: int | None = None


class PlannedTask(BaseModel):
    """One agent invocation in a :class:`TaskPlan`."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    agent_id: str = Field(alias="agentId")
    task_type: TaskType = Field(default=TaskType.SUB_EXECUTION, alias="taskType")
    inputs: Any = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    priority: str = "medium"
    estimated_duration: str | None = Field(default=None, alias="estimatedDuration")
    deliverables: list[str] = Field(default_factory=list)
    timeout: int = 300_000
    stage_id: str | None = Field(default=None, alias="stageId")
    retry_policy: RetryPolicy | None = Field(default=None, alias="retryPolicy")


class TaskDependency(BaseModel):
    from_task: str
    to_task: str
    condition: str | None = None
    required: bool = True


class TaskPlan(BaseModel):
    """Ordered list of tasks for one run.

    Tasks are stored in an order that respects their dependencies, so
    sequential execution can simply walk the list.
    """

    id: str
    tasks: list[PlannedTask] = Field(default_factory=list)
    dependencies: list[TaskDependency] = Field(default_factory=list)
    estimated_duration: int = 0
    success_criteria: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str | None = None
    source: Literal["coordinator", "default", "workflow"] = "coordinator"
    stage_dependencies: list[StageDependency] = Field(default_factory=list)

    def get_task(self, task_id: str) -> PlannedTask | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]

    def stage_tasks(self, stage_id: str) -> list[str]:
        return [task.id for task in self.tasks if task.stage_id == stage_id]

    @staticmethod
    def build_dependencies(tasks: list[PlannedTask]) -> list[TaskDependency]:
        return [
            TaskDependency(from_task=dep, to_task=task.id)
            for task in tasks
            for dep in task.dependencies
        ]


class TaskError(BaseModel):
    message: str
    code: str
    details: dict[str, Any] | None = None


class TaskMetadata(BaseModel):
    execution_time: int = 0
    tokens_used: int = 0
    tools_used: list[str] = Field(default_factory=list)
    attempts: int = 1


class TaskResult(BaseModel):
    """Outcome of a single task (or of the synthesis pass)."""

    success: bool
    output: Any = None
    artifacts: list[Any] = Field(default_factory=list)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)
    error: TaskError | None = None
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def skip(cls, reason: str) -> TaskResult:
        return cls(success=True, skipped=True, reason=reason, metadata=TaskMetadata(attempts=0))

    @classmethod
    def failure(
        cls,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
        execution_time: int = 0,
    ) -> TaskResult:
        return cls(
            success=False,
            error=TaskError(message=message, code=code, details=details),
            metadata=TaskMetadata(execution_time=execution_time),
        )


class RunMetadata(BaseModel):
    execution_time: int = 0
    tokens_used: int = 0
    agents_used: list[str] = Field(default_factory=list)


class WorkflowResult(BaseModel):
    """Final, immutable outcome of a run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    execution_id: str
    status: RunStatus
    plan: TaskPlan | None = None
    execution_plan: ExecutionPlan | None = None
    results: dict[str, TaskResult] = Field(default_factory=dict)
    metadata: RunMetadata = Field(default_factory=RunMetadata)
    error: TaskError | None = None

    @property
    def synthesis(self) -> TaskResult | None:
        return self.results.get(SYNTHESIS_KEY)

    @property
    def failed_tasks(self) -> list[str]:
        return [
            task_id
            for task_id, result in self.results.items()
            if task_id != SYNTHESIS_KEY and not result.success
        ]

    @property
    def skipped_tasks(self) -> list[str]:
        return [task_id for task_id, result in self.results.items() if result.skipped]


class ExecutionRecord(BaseModel):
    """Persisted view of a run, as kept by an execution store."""

    id: str
    workflow_id: str | None = None
    status: RunStatus = RunStatus.PENDING
    request: WorkflowRequest | None = None
    result: WorkflowResult | None = None
    shared_context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    archived: bool = False
