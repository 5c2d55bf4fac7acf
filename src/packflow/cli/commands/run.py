"""The ``run`` command: execute a workflow file with its agent team."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from packflow.config.settings import get_settings
from packflow.engine.engine import WorkflowEngine
from packflow.engine.models import (
    EngineConfig,
    ExecutionMode,
    ExecutionOptions,
    WorkflowRequest,
    WorkflowResult,
)

from ..helpers import (
    build_provider,
    build_registry,
    console,
    load_agents_or_exit,
    load_workflow_or_exit,
    print_json,
    roster_agents,
)


def _status_cell(success: bool, skipped: bool) -> str:
    if skipped:
        return "[yellow]skipped[/yellow]"
    return "[green]success[/green]" if success else "[red]failed[/red]"


def _output_run_results(result: WorkflowResult) -> None:
    status_color = "green" if result.success else "red"
    console.print(
        Panel(
            f"Execution ID: [bold]{result.execution_id}[/bold]\n"
            f"Status: [{status_color}]{result.status.value}[/{status_color}]\n"
            f"Duration: [bold]{result.metadata.execution_time}ms[/bold]\n"
            f"Total Tokens: [bold]{result.metadata.tokens_used:,}[/bold]\n"
            f"Agents: {', '.join(result.metadata.agents_used) or '-'}"
            + (
                f"\nError: [red][{result.error.code}] {result.error.message}[/red]"
                if result.error
                else ""
            ),
            title="Workflow Execution",
            border_style="blue",
        )
    )

    if result.results:
        table = Table(title="Task Results")
        table.add_column("Task", style="cyan")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Tokens", justify="right")
        table.add_column("Detail")
        for task_id, task_result in result.results.items():
            if task_result.error:
                detail = f"[{task_result.error.code}] {task_result.error.message}"
            else:
                detail = task_result.reason or ""
            table.add_row(
                task_id,
                _status_cell(task_result.success, task_result.skipped),
                str(task_result.metadata.attempts),
                f"{task_result.metadata.execution_time}ms",
                str(task_result.metadata.tokens_used),
                detail,
            )
        console.print(table)

    if result.synthesis is not None and result.synthesis.output:
        console.print(Panel(str(result.synthesis.output), title="Synthesis", border_style="green"))


def run(
    workflow_file: Path = typer.Argument(..., help="Workflow YAML/JSON file"),
    request: str = typer.Option(..., "--request", "-r", help="What the team should do"),
    mode: ExecutionMode = typer.Option(
        ExecutionMode.SEQUENTIAL, "--mode", "-m", help="Execution mode"
    ),
    agents_file: Path | None = typer.Option(None, "--agents", "-a", help="Agents file"),
    mock: bool = typer.Option(
        True, "--mock/--no-mock", help="Use the mock provider instead of Anthropic"
    ),
    synthesize: bool = typer.Option(False, "--synthesize", "-s", help="Add a synthesis pass"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Execute a workflow's stages with its agent team."""
    settings = get_settings()
    workflow = load_workflow_or_exit(workflow_file)
    agents = roster_agents(workflow, load_agents_or_exit(agents_file or workflow_file))

    provider = build_provider(settings, mock)
    registry = build_registry(agents, provider)
    config = EngineConfig.from_workflow(
        workflow,
        agents,
        mode=mode,
        execution=ExecutionOptions(
            result_synthesis=synthesize,
            auto_retry=workflow.configuration.auto_retry,
        ),
    )
    engine = WorkflowEngine(config, registry, settings=settings)

    if not json_output:
        console.print(
            f"Running [bold]{workflow.name or workflow.id}[/bold] "
            f"({mode.value}, {'mock' if mock else provider.name} provider)"
        )
    result = asyncio.run(
        engine.execute_workflow(workflow, WorkflowRequest(description=request))
    )

    if json_output:
        print_json(result.model_dump(mode="json"))
    else:
        _output_run_results(result)

    if not result.success:
        raise typer.Exit(1)
