"""YAML/JSON workflow document loading.

A workflow document is the ``WorkflowConfig`` in camelCase form, optionally
with an ``agents:`` list describing the team::

    id: review-pipeline
    name: Review pipeline
    agentIds: [lead, coder]
    mainAgentId: lead
    executionFlow:
      stages:
        - id: implement
          tasks: [{id: write, agentId: coder, timeout: 60000}]
      dependencies: []
    agents:
      - {id: lead, role: main}
      - {id: coder, role: specialist, specialty: code-generation}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from packflow.errors import ValidationError

from .models import AgentConfig, WorkflowConfig

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


def _parse_file(path: str | Path) -> Any:
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Workflow file not found: {path}", {"path": str(path)})

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Invalid document in {path}: {e}", {"path": str(path)}) from e
    return data


def _read_document(path: str | Path) -> dict[str, Any]:
    data = _parse_file(path)
    if not isinstance(data, dict):
        raise ValidationError(f"Workflow file {path} must contain a mapping", {"path": str(path)})
    return data


def load_workflow(path: str | Path) -> WorkflowConfig:
    """Load a workflow from a YAML or JSON file.

    Raises:
        ValidationError: If the file is missing, unparsable or malformed
    """
    data = _read_document(path)
    try:
        workflow = WorkflowConfig.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed workflow in {path}: {e}", {"path": str(path)}) from e
    logger.debug("Loaded workflow %s from %s", workflow.id, path)
    return workflow


def load_agents(path: str | Path) -> list[AgentConfig]:
    """Load the ``agents:`` roster from a workflow or agents file.

    The file may also be a bare list of agent mappings (YAML/JSON).
    """
    raw = _parse_file(path)
    if raw is None:
        raise ValidationError(f"Agents file is empty: {path}", {"path": str(path)})

    entries = raw.get("agents", []) if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise ValidationError(f"'agents' in {path} must be a list", {"path": str(path)})
    try:
        return [AgentConfig.from_dict(entry) for entry in entries]
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed agent in {path}: {e}", {"path": str(path)}) from e


def save_workflow(
    workflow: WorkflowConfig, path: str | Path, agents: list[AgentConfig] | None = None
) -> Path:
    """Write a workflow document, YAML or JSON by file suffix."""
    path = Path(path)
    data = workflow.to_dict()
    if agents:
        data["agents"] = [agent.to_dict() for agent in agents]

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in _YAML_SUFFIXES:
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path
