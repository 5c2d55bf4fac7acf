"""Tests for execution plan generation and the critical path."""

from packflow.workflow.planner import find_critical_path, generate_execution_plan


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stage(stage_id, timeout_ms):
    return {
        "id": stage_id,
        "name": stage_id,
        "timeoutMs": timeout_ms,
        "tasks": [{"id": f"{stage_id}-task", "agentId": "coder"}],
    }


class TestGenerateExecutionPlan:
    """Level-by-level plans."""

    def test_diamond_levels(self, make_workflow):
        wf = make_workflow(
            [_stage("a", 10_000), _stage("b", 20_000), _stage("c", 40_000), _stage("d", 5_000)],
            [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")],
        )
        plan = generate_execution_plan(wf)

        assert plan.total_stages == 4
        assert [lvl.stages for lvl in plan.execution_levels] == [["a"], ["b", "c"], ["d"]]
        assert [lvl.level for lvl in plan.execution_levels] == [1, 2, 3]
        assert plan.execution_levels[1].can_run_in_parallel
        assert not plan.execution_levels[0].can_run_in_parallel
        assert plan.execution_levels[1].estimated_duration == 40_000
        assert plan.execution_levels[2].dependencies == ["b", "c"]
        assert plan.estimated_duration == 10_000 + 40_000 + 5_000

    def test_linear_chain(self, make_workflow):
        wf = make_workflow(
            [_stage("A", 1000), _stage("B", 1000), _stage("C", 1000)],
            [("A", "B"), ("B", "C")],
        )
        plan = generate_execution_plan(wf)

        assert [lvl.stages for lvl in plan.execution_levels] == [["A"], ["B"], ["C"]]
        assert not any(lvl.can_run_in_parallel for lvl in plan.execution_levels)
        assert plan.critical_path == ["A", "B", "C"]
        assert plan.estimated_duration == 3000
        assert plan.warnings == []

    def test_empty_workflow(self, make_workflow):
        plan = generate_execution_plan(make_workflow([]))
        assert plan.total_stages == 0
        assert plan.execution_levels == []
        assert plan.critical_path == []
        assert plan.estimated_duration == 0
        assert plan.warnings == []

    def test_too_many_serial_levels_warning(self, make_workflow):
        ids = [f"s{i}" for i in range(6)]
        wf = make_workflow(ids, list(zip(ids, ids[1:], strict=False)))
        plan = generate_execution_plan(wf)
        assert any("too many serial stages (6 levels)" in w for w in plan.warnings)

    def test_wide_level_warning(self, make_workflow):
        ids = [f"p{i}" for i in range(6)]
        wf = make_workflow(["root", *ids], [("root", i) for i in ids])
        plan = generate_execution_plan(wf)
        assert any("Level 2 contains 6 parallel stages" in w for w in plan.warnings)

    def test_dominant_level_warning(self, make_workflow):
        wf = make_workflow([_stage("a", 10_000), _stage("b", 90_000)], [("a", "b")])
        plan = generate_execution_plan(wf)
        assert any("takes too long" in w for w in plan.warnings)

    def test_balanced_levels_no_duration_warning(self, make_workflow):
        wf = make_workflow(
            [_stage("a", 30_000), _stage("b", 30_000), _stage("c", 30_000)],
            [("a", "b"), ("b", "c")],
        )
        plan = generate_execution_plan(wf)
        assert not any("takes too long" in w for w in plan.warnings)

    def test_to_dict_uses_camel_case(self, make_workflow):
        wf = make_workflow(["a", "b"], [("a", "b")])
        data = generate_execution_plan(wf).to_dict()
        assert data["totalStages"] == 2
        assert data["executionLevels"][0]["canRunInParallel"] is False
        assert data["criticalPath"] == ["a", "b"]


class TestCriticalPath:
    """Longest cumulative-timeout chain."""

    def test_picks_slower_branch(self, make_workflow):
        wf = make_workflow(
            [
                _stage("a", 10_000),
                _stage("fast", 5_000),
                _stage("slow", 50_000),
                _stage("d", 1_000),
            ],
            [("a", "fast"), ("a", "slow"), ("fast", "d"), ("slow", "d")],
        )
        assert find_critical_path(wf) == ["a", "slow", "d"]

    def test_end_stage_includes_own_timeout(self, make_workflow):
        """An isolated long stage beats a short chain."""
        wf = make_workflow(
            [_stage("a", 10_000), _stage("b", 10_000), _stage("big", 100_000)],
            [("a", "b")],
        )
        assert find_critical_path(wf) == ["big"]

    def test_tie_keeps_first_offer(self, make_workflow):
        wf = make_workflow(
            [_stage("a", 10_000), _stage("b", 10_000), _stage("c", 1_000)],
            [("a", "c"), ("b", "c")],
        )
        assert find_critical_path(wf) == ["a", "c"]

    def test_empty(self, make_workflow):
        assert find_critical_path(make_workflow([])) == []
