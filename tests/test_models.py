"""Tests for workflow models, document loading and the dependency manager."""

import json
from datetime import datetime

import pytest

from packflow.errors import ValidationError
from packflow.workflow import (
    AgentConfig,
    AgentRole,
    ConditionType,
    DependencyCondition,
    DependencyManager,
    Stage,
    StageType,
    WorkflowConfig,
    load_agents,
    load_workflow,
    save_workflow,
)

WORKFLOW_YAML = """\
id: review-pipeline
name: Review pipeline
description: Write and review a change
agentIds: [lead, coder, reviewer]
mainAgentId: lead
executionFlow:
  stages:
    - id: implement
      name: Implement
      type: parallel
      timeoutMs: 120000
      retryPolicy: {maxRetries: 2, backoffMs: 500}
      tasks:
        - {id: write, agentId: coder, timeout: 60000, inputs: {lang: python}}
        - {id: docs, agentId: coder}
    - id: review
      name: Review
      tasks:
        - {id: check, agentId: reviewer, dependencies: [write]}
  dependencies:
    - {fromStage: implement, toStage: review, condition: completion}
configuration:
  maxExecutionTime: 600000
  autoRetry: true
agents:
  - {id: lead, role: main, systemPrompt: You coordinate.}
  - {id: coder, specialty: code-generation, llmConfig: {model: claude-test}}
  - {id: reviewer, role: synthesis}
"""


class TestDocumentParsing:
    """camelCase documents to dataclasses and back."""

    def test_from_dict_fields(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML)
        wf = load_workflow(path)

        assert wf.id == "review-pipeline"
        assert wf.main_agent_id == "lead"
        assert wf.configuration.auto_retry is True
        implement = wf.get_stage("implement")
        assert implement.type == StageType.PARALLEL
        assert implement.retry_policy.max_retries == 2
        assert implement.tasks[0].inputs == {"lang": "python"}
        assert implement.tasks[1].timeout == 300_000
        assert wf.get_stage("review").tasks[0].dependencies == ["write"]
        assert wf.dependencies[0].condition.type == ConditionType.COMPLETION

    def test_round_trip_preserves_structure(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML)
        wf = load_workflow(path)
        again = WorkflowConfig.from_dict(wf.to_dict())
        assert again.to_dict() == wf.to_dict()

    def test_missing_id(self):
        with pytest.raises(ValidationError, match="missing 'id'"):
            WorkflowConfig.from_dict({"name": "x"})

    def test_custom_condition_parsing(self):
        assert DependencyCondition.from_value("success").type == ConditionType.SUCCESS
        custom = DependencyCondition.from_value({"type": "custom", "customExpression": "ok"})
        assert custom.custom_expression == "ok"
        assert custom.to_value() == {"type": "custom", "customExpression": "ok"}
        with pytest.raises(ValidationError):
            DependencyCondition.from_value(42)

    def test_datetime_metadata(self):
        wf = WorkflowConfig.from_dict(
            {"id": "w", "metadata": {"createdAt": "2024-01-02T03:04:05Z", "executionCount": 3}}
        )
        assert wf.metadata.created_at == datetime.fromisoformat("2024-01-02T03:04:05+00:00")
        assert wf.metadata.execution_count == 3


class TestLoader:
    """File loading and saving."""

    def test_load_agents_from_workflow_file(self, tmp_path):
        path = tmp_path / "wf.yaml"
        path.write_text(WORKFLOW_YAML)
        agents = load_agents(path)
        assert [a.id for a in agents] == ["lead", "coder", "reviewer"]
        assert agents[0].role == AgentRole.MAIN
        assert agents[0].system_prompt == "You coordinate."
        assert agents[1].model == "claude-test"

    def test_load_agents_bare_list_json(self, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text(json.dumps([{"id": "solo", "role": "coordinator"}]))
        assert load_agents(path)[0].role == AgentRole.COORDINATOR

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            load_workflow(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("id: [unclosed")
        with pytest.raises(ValidationError, match="Invalid document"):
            load_workflow(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValidationError, match="must contain a mapping"):
            load_workflow(path)

    def test_bad_enum_is_malformed(self, tmp_path):
        path = tmp_path / "wf.json"
        path.write_text(
            json.dumps({"id": "w", "executionFlow": {"stages": [{"id": "s", "type": "chaotic"}]}})
        )
        with pytest.raises(ValidationError, match="Malformed workflow"):
            load_workflow(path)

    @pytest.mark.parametrize("suffix", [".yaml", ".json"])
    def test_save_and_reload(self, tmp_path, make_workflow, team, suffix):
        wf = make_workflow(["a", "b"], [("a", "b", "failure")])
        path = save_workflow(wf, tmp_path / "out" / f"wf{suffix}", agents=team)
        loaded = load_workflow(path)
        assert loaded.dependencies[0].condition.type == ConditionType.FAILURE
        assert [a.id for a in load_agents(path)] == ["lead", "coder", "reviewer"]


class TestMutations:
    """WorkflowConfig mutation helpers."""

    def test_add_stage_duplicate(self, make_workflow):
        wf = make_workflow(["a"])
        with pytest.raises(ValidationError, match="already exists"):
            wf.add_stage(Stage(id="a"))

    def test_remove_stage_drops_edges(self, make_workflow):
        wf = make_workflow(["a", "b", "c"], [("a", "b"), ("b", "c")])
        wf.remove_stage("b")
        assert wf.stage_ids() == ["a", "c"]
        assert wf.dependencies == []

    def test_add_dependency_replaces_duplicate(self, make_workflow):
        wf = make_workflow(["a", "b"], [("a", "b")])
        wf.add_dependency("a", "b", "failure")
        assert len(wf.dependencies) == 1
        assert wf.dependencies[0].condition.type == ConditionType.FAILURE

    def test_update_and_remove_dependency(self, make_workflow):
        wf = make_workflow(["a", "b"], [("a", "b")])
        wf.update_dependency("a", "b", "completion")
        assert wf.find_dependency("a", "b").condition.type == ConditionType.COMPLETION
        assert wf.remove_dependency("a", "b") is True
        assert wf.remove_dependency("a", "b") is False
        with pytest.raises(ValidationError):
            wf.update_dependency("a", "b", "success")

    def test_update_stage(self, make_workflow):
        wf = make_workflow(["a"])
        wf.update_stage("a", timeout_ms=5_000)
        assert wf.get_stage("a").timeout_ms == 5_000
        with pytest.raises(ValidationError):
            wf.update_stage("a", id="other")
        with pytest.raises(ValidationError):
            wf.update_stage("missing", name="x")

    def test_team_helpers(self, make_workflow):
        wf = make_workflow(["a"])
        wf.add_agent("extra")
        wf.add_agent("extra")
        assert wf.agent_ids.count("extra") == 1
        wf.set_main_agent("extra")
        assert wf.main_agent_id == "extra"
        wf.remove_agent("extra")
        assert wf.main_agent_id is None
        with pytest.raises(ValidationError):
            wf.set_main_agent("stranger")

    def test_record_execution(self, make_workflow):
        wf = make_workflow(["a"])
        wf.record_execution()
        wf.record_execution()
        assert wf.metadata.execution_count == 2
        assert wf.metadata.last_executed is not None

    def test_agent_config_round_trip(self):
        agent = AgentConfig(id="x", name="X", role=AgentRole.SYNTHESIS, specialty="review")
        assert AgentConfig.from_dict(agent.to_dict()) == agent


class TestDependencyManager:
    """The facade caches its graph until the structure changes."""

    def test_graph_cached(self, make_workflow):
        manager = DependencyManager(make_workflow(["a", "b"], [("a", "b")]))
        assert manager.graph is manager.graph

    def test_graph_rebuilt_after_mutation(self, make_workflow):
        manager = DependencyManager(make_workflow(["a", "b", "c"], [("a", "b")]))
        first = manager.graph
        manager.add_dependency("b", "c")
        assert manager.graph is not first
        assert manager.graph.levels == [["a"], ["b"], ["c"]]

    def test_validate_and_plan(self, make_workflow):
        manager = DependencyManager(make_workflow(["a", "b"], [("a", "b")]))
        assert manager.validate().is_valid
        assert manager.plan().critical_path == ["a", "b"]

    def test_optimize_apply(self, make_workflow):
        wf = make_workflow(["A", "B", "C"], [("A", "B"), ("B", "C"), ("A", "C")])
        manager = DependencyManager(wf)
        manager.optimize()
        assert len(manager.workflow.dependencies) == 3
        manager.optimize(apply=True)
        assert len(manager.workflow.dependencies) == 2
        assert manager.remove_dependency("B", "C") is True
