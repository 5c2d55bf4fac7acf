"""Shared helpers for CLI modules: console, file loading, registry setup."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from packflow.config.settings import Settings
from packflow.engine.agents import AgentRegistry
from packflow.errors import PackflowError
from packflow.providers import AnthropicProvider, MockProvider, Provider
from packflow.workflow.loader import load_agents, load_workflow
from packflow.workflow.models import AgentConfig, AgentRole, WorkflowConfig

console = Console()


def print_json(data: Any) -> None:
    """Plain JSON on stdout, so output can be piped."""
    print(json.dumps(data, indent=2, default=str))


def load_workflow_or_exit(path: Path) -> WorkflowConfig:
    try:
        return load_workflow(path)
    except PackflowError as e:
        console.print(f"[red]Could not load workflow:[/red] {e.message}")
        raise typer.Exit(1)


def load_agents_or_exit(path: Path) -> list[AgentConfig]:
    try:
        return load_agents(path)
    except PackflowError as e:
        console.print(f"[red]Could not load agents:[/red] {e.message}")
        raise typer.Exit(1)


def roster_agents(workflow: WorkflowConfig, agents: list[AgentConfig]) -> list[AgentConfig]:
    """Agents for every roster id, inventing plain configs for undeclared ones."""
    known = {agent.id: agent for agent in agents}
    roster = list(agents)
    for agent_id in workflow.agent_ids:
        if agent_id not in known:
            role = AgentRole.MAIN if agent_id == workflow.main_agent_id else AgentRole.SPECIALIST
            roster.append(AgentConfig(id=agent_id, name=agent_id, role=role))
    return roster


def build_provider(settings: Settings, mock: bool) -> Provider:
    if mock:
        return MockProvider()
    provider = AnthropicProvider.from_settings(settings)
    try:
        provider.initialize()
    except PackflowError as e:
        console.print(f"[red]Provider not available:[/red] {e.message}")
        console.print("Set ANTHROPIC_API_KEY or run with --mock.")
        raise typer.Exit(1)
    return provider


def build_registry(agents: list[AgentConfig], provider: Provider) -> AgentRegistry:
    return AgentRegistry.from_provider(agents, provider)
