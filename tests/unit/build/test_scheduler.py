"""Unit tests for action planning and the action DAG."""

from pathlib import Path

import pytest

from treebuild.build import (
    ActionGraph,
    ActionKind,
    ActionScheduler,
    ActionState,
    BuildAction,
    BuildConfig,
    BuildGraphBuilder,
    CyclicDependencyError,
    DependencyTracker,
    Language,
    ProjectScanner,
    StalenessEvaluator,
)
from treebuild.build.toolchain import CompileJob


def _action(name: str, dependencies: list[str] | None = None, after: list[str] | None = None) -> BuildAction:
    return BuildAction(
        name=name,
        kind=ActionKind.COMPILE,
        job=CompileJob(Path(f"{name}.c"), Language.C, Path(f"{name}.c.o"), Path(f"{name}.c.d")),
        dependencies=dependencies or [],
        after=after or [],
    )


def _plan(root):
    config = BuildConfig.from_environment(root, environ={})
    graph = BuildGraphBuilder(config).build(ProjectScanner(config).scan())
    tracker = DependencyTracker(config.project_dir)
    tracker.enrich(graph)
    return ActionScheduler(StalenessEvaluator(tracker)).plan(graph)


def _named(plan, name: str) -> BuildAction:
    return next(a for a in plan.actions if a.name == name)


class TestActionGraph:
    """Validation and readiness."""

    def test_duplicate_action_raises(self):
        graph = ActionGraph([_action("a")])
        with pytest.raises(ValueError, match="Duplicate action name"):
            graph.add_action(_action("a"))

    def test_unknown_dependency_raises(self):
        graph = ActionGraph([_action("a", ["missing"])])
        with pytest.raises(ValueError, match="unknown action 'missing'"):
            graph.validate()

    def test_cycle_detected(self):
        graph = ActionGraph([_action("a", ["c"]), _action("b", ["a"]), _action("c", ["b"])])
        with pytest.raises(CyclicDependencyError, match="Cyclic dependency"):
            graph.validate()

    def test_self_cycle_detected(self):
        with pytest.raises(CyclicDependencyError):
            ActionGraph([_action("a", ["a"])]).validate()

    def test_ready_respects_dependencies(self):
        graph = ActionGraph([_action("a"), _action("b", ["a"])])
        assert [a.name for a in graph.get_ready_actions()] == ["a"]
        graph.mark_state("a", ActionState.DONE)
        assert [a.name for a in graph.get_ready_actions()] == ["b"]

    def test_blocked_by_failure(self):
        graph = ActionGraph([_action("a"), _action("b", ["a"]), _action("c")])
        graph.mark_state("a", ActionState.FAILED)
        blocked = graph.get_blocked_actions()
        assert [(a.name, dep) for a, dep in blocked] == [("b", "a")]

    def test_all_done(self):
        graph = ActionGraph([_action("a"), _action("b")])
        graph.mark_state("a", ActionState.DONE)
        assert not graph.all_done()
        graph.mark_state("b", ActionState.FAILED)
        assert graph.all_done()

    def test_ordering_edge_waits_but_never_blocks(self):
        graph = ActionGraph([_action("lib"), _action("exe", after=["lib"])])
        assert [a.name for a in graph.get_ready_actions()] == ["lib"]
        graph.mark_state("lib", ActionState.FAILED)
        assert graph.get_blocked_actions() == []
        assert [a.name for a in graph.get_ready_actions()] == ["exe"]

    def test_cycle_through_ordering_edge(self):
        with pytest.raises(CyclicDependencyError):
            ActionGraph([_action("a", ["b"]), _action("b", after=["a"])]).validate()

    def test_mark_unknown_raises(self):
        with pytest.raises(KeyError, match="Unknown action"):
            ActionGraph().mark_state("nope", ActionState.DONE)


class TestActionScheduler:
    """Plans for a fresh tree."""

    def test_fresh_tree_plans_everything(self, project):
        plan = _plan(project)
        assert [a.name for a in plan.compile_actions] == [
            "compile:src/common/util.c",
            "compile:src/appA/main.c",
            "compile:src/appB/main.cpp",
        ]
        assert [a.name for a in plan.link_actions] == ["link:appA", "link:appB"]
        assert plan.up_to_date == []

    def test_link_depends_on_its_compiles(self, project):
        plan = _plan(project)
        assert sorted(_named(plan, "link:appA").dependencies) == [
            "compile:src/appA/main.c",
            "compile:src/common/util.c",
        ]

    def test_pool_object_compiled_once(self, project):
        plan = _plan(project)
        assert sum(1 for a in plan.compile_actions if "common" in a.name) == 1

    def test_link_job_objects_own_then_pool(self, project):
        job = _named(_plan(project), "link:appB").job
        assert [p.name for p in job.objects] == ["main.cpp.o", "util.c.o"]

    def test_executables_ordered_after_library_links(self, make_project):
        root = make_project({"src/app/main.c": "", "src/math_lib/m.c": "", "src/zed_lib/z.c": ""})
        plan = _plan(root)
        assert [a.name for a in plan.link_actions] == ["link:math_lib", "link:zed_lib", "link:app"]
        app = _named(plan, "link:app")
        assert app.after == ["link:math_lib", "link:zed_lib"]
        assert not any(d.startswith("link:") for d in app.dependencies)
        assert app.job.libraries == ("math_lib", "zed_lib")
        assert _named(plan, "link:math_lib").job.libraries == ()

    def test_plan_serializes(self, project):
        data = _plan(project).to_dict()
        assert data["actions"][0]["kind"] == "compile"
        assert data["actions"][0]["reasons"] == ["object missing"]
