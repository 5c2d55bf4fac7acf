"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from packflow.config.settings import Settings, get_settings  # noqa: E402
from packflow.workflow.models import AgentConfig, AgentRole, WorkflowConfig  # noqa: E402

_ENV_VARS = (
    "PACKFLOW_CONFIG",
    "ANTHROPIC_API_KEY",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "EXECUTION_STORE",
    "PARALLEL_LIMIT",
    "DEFAULT_MAX_RETRIES",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from real env vars, .env files and packflow.yaml."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


# ---------------------------------------------------------------------------
# Workflow builders
# ---------------------------------------------------------------------------


def _make_workflow(
    stages=None,
    dependencies=None,
    *,
    agent_ids=("lead", "coder", "reviewer"),
    main_agent_id="lead",
    stage_type="sequential",
    timeout_ms=60_000,
    name="Review pipeline",
    description="Implements and reviews a change",
    configuration=None,
):
    """Build a WorkflowConfig from compact stage and edge shorthands.

    ``stages`` items are stage ids (one ``<id>-task`` run by ``coder``) or
    full camelCase stage dicts. ``dependencies`` items are ``(from, to)``
    or ``(from, to, condition)`` tuples, or dicts.
    """
    stage_dicts = []
    for stage in stages or []:
        if isinstance(stage, dict):
            stage_dicts.append(stage)
            continue
        stage_dicts.append(
            {
                "id": stage,
                "name": stage.title(),
                "type": stage_type,
                "timeoutMs": timeout_ms,
                "tasks": [{"id": f"{stage}-task", "agentId": "coder", "timeout": 30_000}],
            }
        )

    dep_dicts = []
    for dep in dependencies or []:
        if isinstance(dep, dict):
            dep_dicts.append(dep)
            continue
        item = {"fromStage": dep[0], "toStage": dep[1]}
        if len(dep) > 2:
            item["condition"] = dep[2]
        dep_dicts.append(item)

    return WorkflowConfig.from_dict(
        {
            "id": "wf-1",
            "name": name,
            "description": description,
            "agentIds": list(agent_ids),
            "mainAgentId": main_agent_id,
            "executionFlow": {"stages": stage_dicts, "dependencies": dep_dicts},
            "configuration": configuration or {},
        }
    )


@pytest.fixture
def make_workflow():
    return _make_workflow


@pytest.fixture
def team():
    """Agent configs matching the default roster of ``make_workflow``."""
    return [
        AgentConfig(id="lead", name="Lead", role=AgentRole.MAIN),
        AgentConfig(id="coder", name="Coder", specialty="code-generation"),
        AgentConfig(id="reviewer", name="Reviewer", role=AgentRole.SYNTHESIS),
    ]
