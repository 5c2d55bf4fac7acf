"""Workflow configuration models.

Dataclasses for the ``WorkflowConfig`` aggregate and its parts. Documents use
camelCase keys (``agentIds``, ``executionFlow``, ``fromStage`` ...); the
``from_dict``/``to_dict`` pairs translate to and from snake_case attributes.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from packflow.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class AgentRole(str, Enum):
    """Role of an agent within a team."""

    MAIN = "main"
    SPECIALIST = "specialist"
    COORDINATOR = "coordinator"
    SYNTHESIS = "synthesis"


class TaskType(str, Enum):
    """Classification of a task, used for grouping and display."""

    MAIN_PLANNING = "main_planning"
    SUB_EXECUTION = "sub_execution"
    SYNTHESIS = "synthesis"


class StageType(str, Enum):
    """How the tasks inside one stage run relative to each other."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ConditionType(str, Enum):
    """Trigger condition on a stage dependency edge."""

    SUCCESS = "success"
    FAILURE = "failure"
    COMPLETION = "completion"
    CUSTOM = "custom"


@dataclass
class AgentConfig:
    """An agent as seen by the engine: identity, role and prompt settings."""

    id: str
    name: str = ""
    description: str = ""
    role: AgentRole = AgentRole.SPECIALIST
    system_prompt: str = ""
    model: str | None = None
    specialty: str | None = None
    enabled_tools: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> AgentConfig:
        llm_config = data.get("llmConfig") or {}
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            role=AgentRole(data.get("role", AgentRole.SPECIALIST.value)),
            system_prompt=data.get("systemPrompt", data.get("system_prompt", "")),
            model=data.get("model") or llm_config.get("model"),
            specialty=data.get("specialty"),
            enabled_tools=list(data.get("enabledTools", data.get("enabled_tools", []))),
            metadata=dict(data.get("metadata", {})),
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "role": self.role.value,
            "systemPrompt": self.system_prompt,
            "enabledTools": list(self.enabled_tools),
        }
        if self.model:
            result["model"] = self.model
        if self.specialty:
            result["specialty"] = self.specialty
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


@dataclass
class RetryPolicy:
    """Retry budget for the tasks of a stage."""

    max_retries: int = 0
    backoff_ms: int = 1000

    @classmethod
    def from_dict(cls, data: dict | None) -> RetryPolicy:
        data = data or {}
        return cls(
            max_retries=int(data.get("maxRetries", data.get("max_retries", 0))),
            backoff_ms=int(data.get("backoffMs", data.get("backoff_ms", 1000))),
        )

    def to_dict(self) -> dict:
        return {"maxRetries": self.max_retries, "backoffMs": self.backoff_ms}


@dataclass
class StageTask:
    """One agent invocation within a stage."""

    id: str
    agent_id: str
    task_type: TaskType = TaskType.SUB_EXECUTION
    inputs: Any = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    timeout: int = 300_000
    priority: str | None = None
    name: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> StageTask:
        return cls(
            id=data["id"],
            agent_id=data.get("agentId", data.get("agent_id", "")),
            task_type=TaskType(data.get("taskType", data.get("task_type", "sub_execution"))),
            inputs=data.get("inputs", {}),
            dependencies=list(data.get("dependencies", [])),
            timeout=int(data.get("timeout", 300_000)),
            priority=data.get("priority"),
            name=data.get("name", ""),
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "id": self.id,
            "agentId": self.agent_id,
            "taskType": self.task_type.value,
            "inputs": self.inputs,
            "dependencies": list(self.dependencies),
            "timeout": self.timeout,
        }
        if self.priority:
            result["priority"] = self.priority
        if self.name:
            result["name"] = self.name
        if self.description:
            result["description"] = self.description
        return result


@dataclass
class Stage:
    """A scheduling unit holding one or more tasks."""

    id: str
    name: str = ""
    type: StageType = StageType.SEQUENTIAL
    tasks: list[StageTask] = field(default_factory=list)
    timeout_ms: int = 300_000
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_dict(cls, data: dict) -> Stage:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=StageType(data.get("type", "sequential")),
            tasks=[StageTask.from_dict(t) for t in data.get("tasks", [])],
            timeout_ms=int(data.get("timeoutMs", data.get("timeout_ms", 300_000))),
            retry_policy=RetryPolicy.from_dict(data.get("retryPolicy", data.get("retry_policy"))),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "tasks": [t.to_dict() for t in self.tasks],
            "timeoutMs": self.timeout_ms,
            "retryPolicy": self.retry_policy.to_dict(),
        }


@dataclass
class DependencyCondition:
    """When a downstream stage fires relative to its upstream stage."""

    type: ConditionType = ConditionType.SUCCESS
    custom_expression: str | None = None
    description: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> DependencyCondition:
        """Accept a bare string or a ``{type, customExpression}`` mapping."""
        if value is None:
            return cls()
        if isinstance(value, DependencyCondition):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.lower() in {"success", "failure", "completion"}:
                return cls(type=ConditionType(text.lower()))
            return cls(type=ConditionType.CUSTOM, custom_expression=text)
        if isinstance(value, dict):
            return cls(
                type=ConditionType(value.get("type", "success")),
                custom_expression=value.get("customExpression", value.get("custom_expression")),
                description=value.get("description"),
            )
        raise ValidationError(f"Unsupported dependency condition: {value!r}")

    def to_value(self) -> str | dict:
        if self.type == ConditionType.CUSTOM or self.description:
            result: dict[str, Any] = {"type": self.type.value}
            if self.custom_expression:
                result["customExpression"] = self.custom_expression
            if self.description:
                result["description"] = self.description
            return result
        return self.type.value


@dataclass
class StageDependency:
    """Directed edge ``from_stage -> to_stage``."""

    from_stage: str
    to_stage: str
    condition: DependencyCondition = field(default_factory=DependencyCondition)

    @classmethod
    def from_dict(cls, data: dict) -> StageDependency:
        return cls(
            from_stage=data.get("fromStage", data.get("from_stage", "")),
            to_stage=data.get("toStage", data.get("to_stage", "")),
            condition=DependencyCondition.from_value(data.get("condition")),
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"fromStage": self.from_stage, "toStage": self.to_stage}
        if self.condition.type != ConditionType.SUCCESS or self.condition.description:
            result["condition"] = self.condition.to_value()
        return result

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_stage, self.to_stage)


@dataclass
class ExecutionFlow:
    """Stages plus the dependency edges between them."""

    stages: list[Stage] = field(default_factory=list)
    dependencies: list[StageDependency] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict | None) -> ExecutionFlow:
        data = data or {}
        return cls(
            stages=[Stage.from_dict(s) for s in data.get("stages") or []],
            dependencies=[StageDependency.from_dict(d) for d in data.get("dependencies") or []],
        )

    def to_dict(self) -> dict:
        return {
            "stages": [s.to_dict() for s in self.stages],
            "dependencies": [d.to_dict() for d in self.dependencies],
        }


@dataclass
class WorkflowConfiguration:
    max_execution_time: int = 3_600_000
    auto_retry: bool = False
    notifications: bool = True

    @classmethod
    def from_dict(cls, data: dict | None) -> WorkflowConfiguration:
        data = data or {}
        return cls(
            max_execution_time=int(
                data.get("maxExecutionTime", data.get("max_execution_time", 3_600_000))
            ),
            auto_retry=bool(data.get("autoRetry", data.get("auto_retry", False))),
            notifications=bool(data.get("notifications", True)),
        )

    def to_dict(self) -> dict:
        return {
            "maxExecutionTime": self.max_execution_time,
            "autoRetry": self.auto_retry,
            "notifications": self.notifications,
        }


@dataclass
class WorkflowMetadata:
    version: str = "1.0.0"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_executed: datetime | None = None
    execution_count: int = 0

    @classmethod
    def from_dict(cls, data: dict | None) -> WorkflowMetadata:
        data = data or {}
        now = utcnow()
        return cls(
            version=str(data.get("version", "1.0.0")),
            created_at=_parse_datetime(data.get("createdAt")) or now,
            updated_at=_parse_datetime(data.get("updatedAt")) or now,
            last_executed=_parse_datetime(data.get("lastExecuted")),
            execution_count=int(data.get("executionCount", 0)),
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "version": self.version,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
            "executionCount": self.execution_count,
        }
        if self.last_executed:
            result["lastExecuted"] = _format_datetime(self.last_executed)
        return result


@dataclass
class WorkflowConfig:
    """Top-level workflow aggregate.

    Every mutation helper refreshes ``metadata.updated_at``. Execution
    bookkeeping (``execution_count``, ``last_executed``) is only written by
    :meth:`record_execution`.
    """

    id: str
    name: str = ""
    description: str = ""
    agent_ids: list[str] = field(default_factory=list)
    main_agent_id: str | None = None
    execution_flow: ExecutionFlow = field(default_factory=ExecutionFlow)
    configuration: WorkflowConfiguration = field(default_factory=WorkflowConfiguration)
    metadata: WorkflowMetadata = field(default_factory=WorkflowMetadata)

    @classmethod
    def from_dict(cls, data: dict) -> WorkflowConfig:
        if "id" not in data:
            raise ValidationError("Workflow document is missing 'id'")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            description=data.get("description", ""),
            agent_ids=list(data.get("agentIds", data.get("agent_ids", []))),
            main_agent_id=data.get("mainAgentId", data.get("main_agent_id")) or None,
            execution_flow=ExecutionFlow.from_dict(
                data.get("executionFlow", data.get("execution_flow"))
            ),
            configuration=WorkflowConfiguration.from_dict(data.get("configuration")),
            metadata=WorkflowMetadata.from_dict(data.get("metadata")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "agentIds": list(self.agent_ids),
            "mainAgentId": self.main_agent_id or "",
            "executionFlow": self.execution_flow.to_dict(),
            "configuration": self.configuration.to_dict(),
            "metadata": self.metadata.to_dict(),
        }

    def copy(self) -> WorkflowConfig:
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def stages(self) -> list[Stage]:
        return self.execution_flow.stages

    @property
    def dependencies(self) -> list[StageDependency]:
        return self.execution_flow.dependencies

    def stage_ids(self) -> list[str]:
        return [stage.id for stage in self.execution_flow.stages]

    def get_stage(self, stage_id: str) -> Stage | None:
        for stage in self.execution_flow.stages:
            if stage.id == stage_id:
                return stage
        return None

    def find_dependency(self, from_stage: str, to_stage: str) -> StageDependency | None:
        for dep in self.execution_flow.dependencies:
            if dep.from_stage == from_stage and dep.to_stage == to_stage:
                return dep
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def touch(self) -> None:
        self.metadata.updated_at = utcnow()

    def add_agent(self, agent_id: str) -> None:
        if agent_id not in self.agent_ids:
            self.agent_ids.append(agent_id)
        self.touch()

    def remove_agent(self, agent_id: str) -> None:
        if agent_id in self.agent_ids:
            self.agent_ids.remove(agent_id)
        if self.main_agent_id == agent_id:
            self.main_agent_id = None
        self.touch()

    def set_main_agent(self, agent_id: str) -> None:
        if agent_id not in self.agent_ids:
            raise ValidationError(
                f"Main agent {agent_id} must be a member of the workflow team",
                {"agent_id": agent_id},
            )
        self.main_agent_id = agent_id
        self.touch()

    def add_stage(self, stage: Stage) -> None:
        if self.get_stage(stage.id) is not None:
            raise ValidationError(f"Stage {stage.id} already exists", {"stage_id": stage.id})
        self.execution_flow.stages.append(stage)
        self.touch()

    def update_stage(self, stage_id: str, **changes: Any) -> Stage:
        stage = self.get_stage(stage_id)
        if stage is None:
            raise ValidationError(f"Stage {stage_id} not found", {"stage_id": stage_id})
        for key, value in changes.items():
            if not hasattr(stage, key) or key == "id":
                raise ValidationError(f"Cannot update stage attribute '{key}'")
            setattr(stage, key, value)
        self.touch()
        return stage

    def remove_stage(self, stage_id: str) -> None:
        flow = self.execution_flow
        flow.stages = [s for s in flow.stages if s.id != stage_id]
        flow.dependencies = [
            d for d in flow.dependencies if d.from_stage != stage_id and d.to_stage != stage_id
        ]
        self.touch()

    def add_dependency(
        self,
        from_stage: str,
        to_stage: str,
        condition: DependencyCondition | str | dict | None = None,
    ) -> StageDependency:
        """Add an edge. Duplicates are replaced, graph validity is not checked."""
        dep = StageDependency(
            from_stage=from_stage,
            to_stage=to_stage,
            condition=DependencyCondition.from_value(condition),
        )
        existing = self.find_dependency(from_stage, to_stage)
        if existing is not None:
            self.execution_flow.dependencies.remove(existing)
        self.execution_flow.dependencies.append(dep)
        self.touch()
        return dep

    def remove_dependency(self, from_stage: str, to_stage: str) -> bool:
        dep = self.find_dependency(from_stage, to_stage)
        if dep is None:
            return False
        self.execution_flow.dependencies.remove(dep)
        self.touch()
        return True

    def update_dependency(
        self, from_stage: str, to_stage: str, condition: DependencyCondition | str | dict
    ) -> StageDependency:
        dep = self.find_dependency(from_stage, to_stage)
        if dep is None:
            raise ValidationError(
                f"Dependency {from_stage} -> {to_stage} not found",
                {"from_stage": from_stage, "to_stage": to_stage},
            )
        dep.condition = DependencyCondition.from_value(condition)
        self.touch()
        return dep

    def record_execution(self, at: datetime | None = None) -> None:
        """Bump execution bookkeeping after a run."""
        self.metadata.execution_count += 1
        self.metadata.last_executed = at or utcnow()
