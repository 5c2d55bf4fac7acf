"""Workflow data model and design-time dependency tools."""

from .conditions import (
    StageOutcome,
    StageStatus,
    evaluate_condition,
    evaluate_expression,
    parse_condition_expression,
)
from .dependencies import DependencyIssue, DependencyValidationResult, validate_dependencies
from .graph import DependencyGraph, build_dependency_graph, topological_levels
from .loader import load_agents, load_workflow, save_workflow
from .manager import DependencyManager
from .models import (
    AgentConfig,
    AgentRole,
    ConditionType,
    DependencyCondition,
    ExecutionFlow,
    RetryPolicy,
    Stage,
    StageDependency,
    StageTask,
    StageType,
    TaskType,
    WorkflowConfig,
    WorkflowConfiguration,
    WorkflowMetadata,
)
from .optimizer import (
    OptimizationResult,
    find_parallelization_opportunities,
    find_redundant_dependencies,
    optimize_dependencies,
)
from .planner import ExecutionLevel, ExecutionPlan, find_critical_path, generate_execution_plan
from .validator import (
    IssueCategory,
    Severity,
    ValidationIssue,
    WorkflowValidationResult,
    WorkflowValidator,
    validate_workflow,
)

__all__ = [
    # Models
    "AgentConfig",
    "AgentRole",
    "ConditionType",
    "DependencyCondition",
    "ExecutionFlow",
    "RetryPolicy",
    "Stage",
    "StageDependency",
    "StageTask",
    "StageType",
    "TaskType",
    "WorkflowConfig",
    "WorkflowConfiguration",
    "WorkflowMetadata",
    # Loading
    "load_agents",
    "load_workflow",
    "save_workflow",
    # Graph
    "DependencyGraph",
    "build_dependency_graph",
    "topological_levels",
    # Validation
    "DependencyIssue",
    "DependencyValidationResult",
    "validate_dependencies",
    "IssueCategory",
    "Severity",
    "ValidationIssue",
    "WorkflowValidationResult",
    "WorkflowValidator",
    "validate_workflow",
    # Planning
    "ExecutionLevel",
    "ExecutionPlan",
    "find_critical_path",
    "generate_execution_plan",
    # Optimization
    "OptimizationResult",
    "find_parallelization_opportunities",
    "find_redundant_dependencies",
    "optimize_dependencies",
    # Conditions
    "StageOutcome",
    "StageStatus",
    "evaluate_condition",
    "evaluate_expression",
    "parse_condition_expression",
    # Facade
    "DependencyManager",
]
