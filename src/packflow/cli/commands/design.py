"""Design-time commands: validate, plan and optimize workflow files."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from packflow.workflow.dependencies import validate_dependencies
from packflow.workflow.loader import save_workflow
from packflow.workflow.manager import DependencyManager
from packflow.workflow.validator import Severity, validate_workflow

from ..helpers import console, load_agents_or_exit, load_workflow_or_exit, print_json

_SEVERITY_STYLE = {
    Severity.ERROR: ("red", "✗"),
    Severity.WARNING: ("yellow", "!"),
    Severity.INFO: ("blue", "i"),
}


def validate(
    workflow_file: Path = typer.Argument(..., help="Workflow YAML/JSON file"),
    agents_file: Path | None = typer.Option(
        None, "--agents", "-a", help="Agents file (defaults to the workflow file's agents)"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Validate a workflow and score it."""
    workflow = load_workflow_or_exit(workflow_file)
    agents = load_agents_or_exit(agents_file or workflow_file)
    result = validate_workflow(workflow, agents)

    if json_output:
        print_json(result.to_dict())
        if not result.is_valid:
            raise typer.Exit(1)
        return

    for severity in Severity:
        issues = result.by_severity(severity)
        if not issues:
            continue
        color, mark = _SEVERITY_STYLE[severity]
        lines = []
        for issue in issues:
            where = f" [dim]({issue.location})[/dim]" if issue.location else ""
            lines.append(f"[{color}]{mark}[/{color}] {issue.code}: {issue.message}{where}")
            if issue.suggestion:
                lines.append(f"    [dim]{issue.suggestion}[/dim]")
        console.print(
            Panel("\n".join(lines), title=severity.value.title(), border_style=color)
        )

    score_color = "green" if result.score >= 80 else "yellow" if result.score >= 50 else "red"
    console.print(f"Score: [{score_color}]{result.score}/100[/{score_color}]")
    if result.is_valid:
        console.print(f"[green]✓ Workflow is valid:[/green] {workflow_file}")
    else:
        console.print("[red]✗ Validation failed[/red]")
        raise typer.Exit(1)


def plan(
    workflow_file: Path = typer.Argument(..., help="Workflow YAML/JSON file"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the execution levels, critical path and warnings."""
    workflow = load_workflow_or_exit(workflow_file)
    validation = validate_dependencies(workflow)

    if not validation.is_valid:
        if json_output:
            print_json({"validation": validation.to_dict(), "plan": None})
        else:
            console.print(
                Panel(
                    "\n".join(f"[red]✗[/red] {m}" for m in validation.error_messages),
                    title="Invalid dependencies",
                    border_style="red",
                )
            )
        raise typer.Exit(1)

    execution_plan = DependencyManager(workflow).plan()
    if json_output:
        print_json({"validation": validation.to_dict(), "plan": execution_plan.to_dict()})
        return

    table = Table(title=f"Execution plan: {workflow.name or workflow.id}")
    table.add_column("Level", justify="right")
    table.add_column("Stages", style="cyan")
    table.add_column("Parallel")
    table.add_column("Est. duration", justify="right")
    table.add_column("Depends on", style="dim")
    for level in execution_plan.execution_levels:
        table.add_row(
            str(level.level),
            ", ".join(level.stages),
            "yes" if level.can_run_in_parallel else "no",
            f"{level.estimated_duration / 1000:.0f}s",
            ", ".join(level.dependencies),
        )
    console.print(table)
    console.print(
        f"Total: [bold]{execution_plan.total_stages}[/bold] stages, "
        f"[bold]{execution_plan.estimated_duration / 1000:.0f}s[/bold] estimated"
    )
    console.print(f"Critical path: [bold]{' -> '.join(execution_plan.critical_path)}[/bold]")

    notes = validation.warning_messages + execution_plan.warnings
    if notes:
        console.print(
            Panel(
                "\n".join(f"[yellow]![/yellow] {w}" for w in notes),
                title="Warnings",
                border_style="yellow",
            )
        )


def optimize(
    workflow_file: Path = typer.Argument(..., help="Workflow YAML/JSON file"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the optimized workflow here"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Remove redundant dependencies and suggest parallelization."""
    workflow = load_workflow_or_exit(workflow_file)
    result = DependencyManager(workflow).optimize()

    if output is not None:
        agents = load_agents_or_exit(workflow_file)
        save_workflow(result.workflow, output, agents=agents)

    if json_output:
        print_json(
            {
                "removed": [edge.to_dict() for edge in result.removed],
                "suggestions": result.suggestions,
                "notes": result.notes,
                "output": str(output) if output else None,
            }
        )
        return

    if result.removed:
        table = Table(title="Redundant dependencies")
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        for edge in result.removed:
            table.add_row(edge.from_stage, edge.to_stage)
        console.print(table)
    else:
        console.print("[green]✓ No redundant dependencies[/green]")

    for suggestion in result.suggestions:
        console.print(f"[blue]i[/blue] {suggestion}")
    if output is not None:
        console.print(f"Optimized workflow written to [bold]{output}[/bold]")
