"""Workflow execution engine and its collaborators."""

from .agents import Agent, AgentMetadata, AgentRegistry, AgentResponse, ProviderAgent
from .context import SharedContext
from .control import RunControl
from .engine import WorkflowEngine
from .events import (
    CallbackEventSink,
    CompositeEventSink,
    EventSink,
    EventType,
    LoggingEventSink,
    QueueEventSink,
    WorkflowEvent,
)
from .extraction import (
    DecisionPayload,
    PlanPayload,
    RegexJsonExtractor,
    StructuredOutputExtractor,
    extract_model,
    extract_or,
)
from .models import (
    SYNTHESIS_KEY,
    DependencyFailurePolicy,
    EngineConfig,
    ExecutionMode,
    ExecutionOptions,
    ExecutionRecord,
    PlannedTask,
    RunMetadata,
    RunStatus,
    Specialist,
    TaskDependency,
    TaskError,
    TaskMetadata,
    TaskPlan,
    TaskResult,
    WorkflowRequest,
    WorkflowResult,
)
from .planning import create_default_plan, parse_duration, plan_from_payload, plan_from_workflow
from .store import (
    ExecutionStore,
    InMemoryExecutionStore,
    SQLiteExecutionStore,
    create_execution_store,
)

__all__ = [
    # Engine
    "WorkflowEngine",
    "RunControl",
    "SharedContext",
    # Agents
    "Agent",
    "AgentMetadata",
    "AgentRegistry",
    "AgentResponse",
    "ProviderAgent",
    # Models
    "SYNTHESIS_KEY",
    "DependencyFailurePolicy",
    "EngineConfig",
    "ExecutionMode",
    "ExecutionOptions",
    "ExecutionRecord",
    "PlannedTask",
    "RunMetadata",
    "RunStatus",
    "Specialist",
    "TaskDependency",
    "TaskError",
    "TaskMetadata",
    "TaskPlan",
    "TaskResult",
    "WorkflowRequest",
    "WorkflowResult",
    # Planning
    "create_default_plan",
    "parse_duration",
    "plan_from_payload",
    "plan_from_workflow",
    # Extraction
    "DecisionPayload",
    "PlanPayload",
    "RegexJsonExtractor",
    "StructuredOutputExtractor",
    "extract_model",
    "extract_or",
    # Events
    "CallbackEventSink",
    "CompositeEventSink",
    "EventSink",
    "EventType",
    "LoggingEventSink",
    "QueueEventSink",
    "WorkflowEvent",
    # Stores
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SQLiteExecutionStore",
    "create_execution_store",
]
