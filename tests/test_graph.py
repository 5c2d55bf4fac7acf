"""Tests for dependency graph leveling."""

from packflow.workflow.graph import build_dependency_graph, topological_levels


class TestTopologicalLevels:
    """Kahn leveling over plain node ids."""

    def test_linear_chain(self):
        """A -> B -> C yields one stage per level."""
        levels = topological_levels(["A", "B", "C"], [("A", "B"), ("B", "C")])
        assert levels == [["A"], ["B"], ["C"]]

    def test_diamond(self):
        """B and C share a level between A and D."""
        levels = topological_levels(
            ["A", "B", "C", "D"], [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]
        )
        assert levels == [["A"], ["B", "C"], ["D"]]

    def test_no_edges_single_level(self):
        """Independent nodes all land on level one in input order."""
        assert topological_levels(["x", "y", "z"], []) == [["x", "y", "z"]]

    def test_empty(self):
        assert topological_levels([], []) == []

    def test_unknown_endpoints_ignored(self):
        """Edges naming unknown nodes do not block leveling."""
        levels = topological_levels(["A", "B"], [("ghost", "A"), ("A", "B"), ("B", "nowhere")])
        assert levels == [["A"], ["B"]]

    def test_cycle_remainder_becomes_final_level(self):
        """Nodes stuck in a cycle are grouped into one trailing level."""
        levels = topological_levels(["A", "B", "C"], [("B", "C"), ("C", "B")])
        assert levels == [["A"], ["B", "C"]]

    def test_every_node_appears_once(self):
        nodes = ["a", "b", "c", "d", "e"]
        edges = [("a", "c"), ("b", "c"), ("c", "d"), ("e", "d")]
        levels = topological_levels(nodes, edges)
        flat = [n for level in levels for n in level]
        assert sorted(flat) == sorted(nodes)
        assert len(flat) == len(set(flat))

    def test_duplicate_nodes_collapsed(self):
        assert topological_levels(["A", "A", "B"], [("A", "B")]) == [["A"], ["B"]]


class TestBuildDependencyGraph:
    """Graph built from a workflow."""

    def test_levels_follow_dependencies(self, make_workflow):
        wf = make_workflow(["plan", "build", "test"], [("plan", "build"), ("build", "test")])
        graph = build_dependency_graph(wf)
        assert graph.nodes == ["plan", "build", "test"]
        assert graph.levels == [["plan"], ["build"], ["test"]]

    def test_level_of_and_neighbours(self, make_workflow):
        wf = make_workflow(["a", "b", "c"], [("a", "b"), ("a", "c")])
        graph = build_dependency_graph(wf)
        assert graph.level_of("a") == 0
        assert graph.level_of("c") == 1
        assert graph.level_of("missing") is None
        assert graph.successors("a") == ["b", "c"]
        assert graph.predecessors("c") == ["a"]

    def test_invalid_edges_kept_but_not_used(self, make_workflow):
        """Edges to unknown stages stay visible but do not affect neighbours."""
        wf = make_workflow(["a", "b"], [("a", "ghost"), ("a", "b")])
        graph = build_dependency_graph(wf)
        assert len(graph.edges) == 2
        assert graph.successors("a") == ["b"]
        assert graph.levels == [["a"], ["b"]]

    def test_empty_workflow(self, make_workflow):
        graph = build_dependency_graph(make_workflow([]))
        assert graph.is_empty
        assert graph.levels == []

    def test_to_dict(self, make_workflow):
        wf = make_workflow(["a", "b"], [("a", "b", "completion")])
        data = build_dependency_graph(wf).to_dict()
        assert data["levels"] == [["a"], ["b"]]
        assert data["edges"][0]["condition"] == "completion"

    def test_does_not_mutate_workflow(self, make_workflow):
        wf = make_workflow(["a", "b"], [("a", "b")])
        before = wf.to_dict()
        build_dependency_graph(wf)
        assert wf.to_dict() == before
