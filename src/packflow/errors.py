"""Packflow Error Hierarchy.

Structured exception types for the workflow engine. Every error carries a
stable ``code`` that ends up in ``WorkflowResult.error`` or ``TaskResult.error``.
"""

from __future__ import annotations


class PackflowError(Exception):
    """Base error for all Packflow exceptions."""

    code = "PACKFLOW_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Validation Errors
class ValidationError(PackflowError):
    """Workflow or document validation failed."""

    code = "VALIDATION"


class ConditionExpressionError(ValidationError):
    """A custom dependency condition could not be parsed or evaluated."""

    code = "INVALID_CONDITION"

    def __init__(self, message: str, expression: str | None = None):
        super().__init__(message, {"expression": expression})
        self.expression = expression


# Agent Errors
class AgentError(PackflowError):
    """Base error for agent execution failures."""

    code = "AGENT_ERROR"


class AgentNotFoundError(AgentError):
    """A task referenced an agent id the registry cannot resolve."""

    code = "AGENT_NOT_FOUND"

    def __init__(self, agent_id: str, task_id: str | None = None):
        super().__init__(f"Agent {agent_id} not found", {"agent_id": agent_id, "task_id": task_id})
        self.agent_id = agent_id
        self.task_id = task_id


class CoordinatorNotFoundError(AgentNotFoundError):
    """The coordinating agent is required but not registered."""

    code = "COORDINATOR_NOT_FOUND"

    def __init__(self, agent_id: str, purpose: str = "planning"):
        super().__init__(agent_id)
        self.message = f"Coordinator agent {agent_id} not found (required for {purpose})"
        self.args = (self.message,)
        self.details["purpose"] = purpose
        self.purpose = purpose


class AgentTimeoutError(AgentError):
    """Agent execution exceeded its timeout."""

    code = "TASK_TIMEOUT"

    def __init__(self, message: str, task_id: str | None = None, timeout_ms: int | None = None):
        super().__init__(message, {"task_id": task_id, "timeout_ms": timeout_ms})
        self.task_id = task_id
        self.timeout_ms = timeout_ms


class TaskExecutionError(AgentError):
    """An agent invocation raised instead of returning a response."""

    code = "TASK_EXECUTION_ERROR"


# Provider Errors
class ProviderError(PackflowError):
    """LLM provider call failed."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message, {"provider": provider, "status_code": status_code})
        self.provider = provider
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """Provider was used before it was initialized with credentials."""

    code = "PROVIDER_NOT_CONFIGURED"


# Workflow Errors
class WorkflowError(PackflowError):
    """Base error for workflow execution failures."""

    code = "WORKFLOW_EXECUTION_ERROR"


class InvalidDependencyGraphError(WorkflowError):
    """Dependency graph failed validation and cannot be executed."""

    code = "INVALID_DEPENDENCY_GRAPH"

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


class PlanningError(WorkflowError):
    """Coordinator could not produce a plan."""

    code = "PLANNING_FAILED"


class PlanRejectedError(WorkflowError):
    """Plan confirmation was declined."""

    code = "PLAN_REJECTED"


class DependencyFailedError(WorkflowError):
    """A dependency failed under the ``abort`` policy."""

    code = "DEPENDENCY_FAILED"

    def __init__(self, task_id: str, dependency_id: str):
        super().__init__(
            f"Task {task_id} aborted: dependency {dependency_id} failed",
            {"task_id": task_id, "dependency_id": dependency_id},
        )
        self.task_id = task_id
        self.dependency_id = dependency_id


class ExecutionCancelledError(WorkflowError):
    """Run was cancelled by the caller."""

    code = "EXECUTION_CANCELLED"


class WorkflowNotFoundError(WorkflowError):
    """Workflow definition not found."""

    code = "NOT_FOUND"


# State Errors
class StoreError(PackflowError):
    """Error in execution record persistence."""

    code = "STATE_ERROR"


class ExecutionNotFoundError(StoreError):
    """No execution record with the given id."""

    code = "NOT_FOUND"
