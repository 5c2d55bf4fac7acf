"""Tests for plan construction and coordinator output extraction."""

import pytest

from packflow.errors import ValidationError
from packflow.engine.extraction import (
    DecisionPayload,
    PlanPayload,
    RegexJsonExtractor,
    extract_model,
    extract_or,
)
from packflow.engine.models import (
    EngineConfig,
    ExecutionMode,
    PlannedTask,
    Specialist,
    WorkflowRequest,
)
from packflow.engine.planning import (
    create_default_plan,
    order_tasks,
    parse_duration,
    plan_from_payload,
    plan_from_workflow,
)
from packflow.workflow.models import TaskType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(specialists=(("coder", "code-generation"), ("writer", "docs"))):
    return EngineConfig(
        id="team",
        coordinator_id="lead",
        specialists=[Specialist(agent_id=a, specialty=s) for a, s in specialists],
    )


def _payload(*tasks, **extra):
    return PlanPayload.model_validate({"tasks": list(tasks), **extra})


def _task(task_id, agent="coder", deps=(), **extra):
    return {"id": task_id, "agentId": agent, "dependencies": list(deps), **extra}


class TestParseDuration:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("30 minutes", 1_800_000),
            ("45 min", 2_700_000),
            ("2h", 7_200_000),
            ("1.5 hours", 5_400_000),
            ("90 seconds", 90_000),
            ("about 10 secs", 10_000),
        ],
    )
    def test_units(self, text, expected):
        assert parse_duration(text, 0) == expected

    @pytest.mark.parametrize("text", [None, "", "soon", "a while"])
    def test_default(self, text):
        assert parse_duration(text, 123) == 123


class TestDefaultPlan:
    """Fallback plan: one chained task per specialist."""

    def test_chained_specialist_tasks(self, settings):
        request = WorkflowRequest(description="ship it", input={"ticket": 7})
        plan = create_default_plan(_config(), request, settings)

        assert plan.source == "default"
        assert plan.task_ids() == ["task-1", "task-2"]
        assert plan.tasks[0].name == "code-generation work"
        assert plan.tasks[0].description == "Execute code-generation tasks for: ship it"
        assert plan.tasks[1].dependencies == ["task-1"]
        assert plan.tasks[0].inputs == {"ticket": 7}
        assert plan.tasks[0].timeout == settings.default_plan_task_timeout_ms
        assert plan.estimated_duration == 2 * settings.default_task_estimate_ms
        assert [(d.from_task, d.to_task) for d in plan.dependencies] == [("task-1", "task-2")]

    def test_coordinator_only_team(self, settings):
        plan = create_default_plan(_config(()), WorkflowRequest(description="x"), settings)
        assert [t.agent_id for t in plan.tasks] == ["lead"]
        assert plan.tasks[0].task_type == TaskType.MAIN_PLANNING

    def test_empty_team(self, settings):
        config = EngineConfig(id="t")
        plan = create_default_plan(config, WorkflowRequest(description="x"), settings)
        assert plan.tasks == []


class TestPlanFromPayload:
    """Coordinator JSON to a schedulable plan."""

    def test_reorders_by_dependencies(self, settings):
        payload = _payload(_task("b", deps=["a"]), _task("a"), _task("c", deps=["b"]))
        plan = plan_from_payload(payload, _config(), WorkflowRequest(description="x"), settings)
        assert plan.task_ids() == ["a", "b", "c"]
        assert plan.source == "coordinator"
        assert plan.created_by == "lead"

    def test_cycle_returns_none(self, settings):
        payload = _payload(_task("a", deps=["b"]), _task("b", deps=["a"]))
        request = WorkflowRequest(description="x")
        assert plan_from_payload(payload, _config(), request, settings) is None

    def test_duplicate_ids_return_none(self, settings):
        payload = _payload(_task("a"), _task("a"))
        request = WorkflowRequest(description="x")
        assert plan_from_payload(payload, _config(), request, settings) is None

    def test_unknown_and_self_dependencies_dropped(self, settings):
        payload = _payload(_task("a", deps=["a", "ghost"]))
        plan = plan_from_payload(payload, _config(), WorkflowRequest(description="x"), settings)
        assert plan.tasks[0].dependencies == []

    def test_request_input_fills_empty_inputs(self, settings):
        payload = _payload(_task("a"), _task("b", inputs={"own": 1}))
        request = WorkflowRequest(description="x", input="data")
        plan = plan_from_payload(payload, _config(), request, settings)
        assert plan.tasks[0].inputs == {"input": "data"}
        assert plan.tasks[1].inputs == {"own": 1}

    def test_timeout_retry_and_estimate(self):
        from packflow.config.settings import Settings

        settings = Settings(_env_file=None, default_max_retries=2, default_task_estimate_ms=1000)
        payload = _payload(
            _task("a", estimatedDuration="2 minutes"),
            _task("b", estimatedDuration="whenever"),
            successCriteria="tests pass",
        )
        plan = plan_from_payload(payload, _config(), WorkflowRequest(description="x"), settings)
        assert plan.tasks[0].timeout == settings.default_task_timeout_ms
        assert plan.tasks[0].retry_policy.max_retries == 2
        assert plan.estimated_duration == 120_000 + 1000
        assert plan.success_criteria == ["tests pass"]

    def test_task_types_follow_roles(self, settings):
        payload = _payload(_task("plan", agent="lead"), _task("code"))
        plan = plan_from_payload(payload, _config(), WorkflowRequest(description="x"), settings)
        assert plan.get_task("plan").task_type == TaskType.MAIN_PLANNING
        assert plan.get_task("code").task_type == TaskType.SUB_EXECUTION


class TestOrderTasks:
    def test_stable_among_ready(self):
        tasks = [
            PlannedTask(id="x", agent_id="a"),
            PlannedTask(id="y", agent_id="a"),
            PlannedTask(id="z", agent_id="a", dependencies=["x"]),
        ]
        assert [t.id for t in order_tasks(tasks)] == ["x", "y", "z"]


class TestPlanFromWorkflow:
    """Flattening stages into tasks."""

    def test_sequential_and_parallel_stages(self, make_workflow):
        wf = make_workflow(
            [
                {
                    "id": "build",
                    "name": "Build",
                    "type": "parallel",
                    "retryPolicy": {"maxRetries": 1, "backoffMs": 10},
                    "tasks": [
                        {"id": "api", "agentId": "coder"},
                        {"id": "ui", "agentId": "coder"},
                    ],
                },
                {
                    "id": "ship",
                    "name": "Ship",
                    "tasks": [
                        {"id": "package", "agentId": "coder"},
                        {"id": "announce", "agentId": "reviewer", "name": "Announce"},
                    ],
                },
            ],
            [("build", "ship")],
        )
        plan = plan_from_workflow(wf)

        assert plan.source == "workflow"
        assert plan.task_ids() == ["api", "ui", "package", "announce"]
        assert plan.get_task("api").dependencies == []
        assert plan.get_task("package").dependencies == ["api", "ui"]
        assert plan.get_task("announce").dependencies == ["api", "ui", "package"]
        assert plan.get_task("api").name == "Build: api"
        assert plan.get_task("announce").name == "Announce"
        assert plan.get_task("ui").retry_policy.max_retries == 1
        assert plan.stage_tasks("ship") == ["package", "announce"]
        assert [d.key for d in plan.stage_dependencies] == [("build", "ship")]

    def test_empty_stage_passes_predecessors_through(self, make_workflow):
        empty = {"id": "gate", "name": "Gate", "tasks": []}
        wf = make_workflow(["a", empty, "c"], [("a", "gate"), ("gate", "c")])
        plan = plan_from_workflow(wf)
        assert plan.get_task("c-task").dependencies == ["a-task"]

    def test_estimate_is_max_per_level(self, make_workflow):
        wf = make_workflow(
            [
                {"id": "a", "name": "A", "timeoutMs": 10_000, "tasks": []},
                {"id": "b", "name": "B", "timeoutMs": 30_000, "tasks": []},
                {"id": "c", "name": "C", "timeoutMs": 20_000, "tasks": []},
            ],
            [("a", "c")],
        )
        # Levels: [a, b] then [c]
        assert plan_from_workflow(wf).estimated_duration == 30_000 + 20_000

    def test_task_local_dependency_kept(self, make_workflow):
        stage = {
            "id": "s",
            "name": "S",
            "type": "parallel",
            "tasks": [
                {"id": "second", "agentId": "coder", "dependencies": ["first", "ghost"]},
                {"id": "first", "agentId": "coder"},
            ],
        }
        plan = plan_from_workflow(make_workflow([stage]))
        assert plan.task_ids() == ["first", "second"]
        assert plan.get_task("second").dependencies == ["first"]

    def test_duplicate_task_ids_rejected(self, make_workflow):
        dup = {"id": "b", "name": "B", "tasks": [{"id": "a-task", "agentId": "coder"}]}
        wf = make_workflow(["a", dup], [("a", "b")])
        with pytest.raises(ValidationError, match="unique across stages"):
            plan_from_workflow(wf)

    def test_duplicate_stage_ids_rejected(self, make_workflow):
        first = {"id": "a", "tasks": [{"id": "a-task", "agentId": "coder"}]}
        second = {"id": "a", "tasks": [{"id": "a-task-2", "agentId": "coder"}]}
        with pytest.raises(ValidationError, match="Stage ids must be unique: a") as exc_info:
            plan_from_workflow(make_workflow([first, second]))
        assert exc_info.value.details == {"duplicates": ["a"]}


class TestExtraction:
    """JSON scraping from prose."""

    def test_fenced_block_preferred(self):
        text = 'Plan below {"ignored": true}\n```json\n{"tasks": []}\n```'
        # Fenced candidates are tried first
        assert RegexJsonExtractor().extract(text) == {"tasks": []}

    def test_braced_fallback(self):
        text = 'Sure! {"shouldExecute": false, "reason": "done"} Thanks.'
        assert RegexJsonExtractor().extract(text) == {"shouldExecute": False, "reason": "done"}

    def test_nothing_found(self):
        assert RegexJsonExtractor().extract("no json here") is None
        assert RegexJsonExtractor().extract("") is None
        assert RegexJsonExtractor().extract("[1, 2, 3]") is None
        assert extract_or(RegexJsonExtractor(), "nope", {"fallback": 1}) == {"fallback": 1}

    def test_extract_model_validates(self):
        extractor = RegexJsonExtractor()
        decision = extract_model(
            extractor, '{"shouldExecute": true, "modifications": {"x": 1}}', DecisionPayload
        )
        assert decision.should_execute is True
        assert decision.modifications == {"x": 1}
        # Missing required field
        assert extract_model(extractor, '{"reason": "?"}', DecisionPayload) is None
        # Empty task list is not a plan
        assert extract_model(extractor, '{"tasks": []}', PlanPayload) is None


class TestEngineConfig:
    def test_from_workflow(self, make_workflow, team):
        wf = make_workflow(["a"], configuration={"autoRetry": True})
        config = EngineConfig.from_workflow(wf, team, mode=ExecutionMode.PARALLEL)
        assert config.coordinator_id == "lead"
        assert [(s.agent_id, s.specialty) for s in config.specialists] == [
            ("coder", "code-generation"),
            ("reviewer", "synthesis"),
        ]
        assert config.execution.auto_retry is True
        assert config.task_type_for("reviewer") == TaskType.SYNTHESIS

    def test_unknown_roster_member_is_general(self, make_workflow):
        config = EngineConfig.from_workflow(make_workflow(["a"]))
        assert {s.specialty for s in config.specialists} == {"general"}
