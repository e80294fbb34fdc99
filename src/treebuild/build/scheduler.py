"""Action planning and the dependency DAG of build actions.

ActionScheduler turns a BuildGraph into a BuildPlan: one compile action per
stale object and one link action per stale target. ActionGraph tracks the
planned actions while they execute, emitting an action only when every
prerequisite completed successfully and every ordering edge has finished.

Edges:
    compile(obj)      -> link(target)   for every target linking obj (must succeed)
    link(library)     -> link(exe)      for libraries linked in the same run (ordering only)
"""

import logging
import threading
from pathlib import Path

from .build_graph import BuildGraph, ObjectFile, Target
from .errors import CyclicDependencyError
from .models import ActionKind, ActionState, BuildAction, BuildPlan
from .staleness import StalenessEvaluator
from .toolchain import CompileJob, LinkJob

logger = logging.getLogger(__name__)


def compile_action_name(obj: ObjectFile, graph: BuildGraph) -> str:
    return f"compile:{obj.source.path.relative_to(graph.config.project_dir).as_posix()}"


def link_action_name(target: Target) -> str:
    return f"link:{target.name}"


class ActionGraph:
    """Tracks planned actions by name through their states.

    Thread-safe: worker threads may call mark_state() while the executor loop
    calls get_ready_actions().

    Usage:
        graph = ActionGraph(plan.actions)
        graph.validate()  # raises CyclicDependencyError if cycle detected

        while not graph.all_done():
            for action in graph.get_ready_actions():
                pool.submit(action)
    """

    def __init__(self, actions: list[BuildAction] | None = None) -> None:
        self._actions: dict[str, BuildAction] = {}
        self._lock = threading.Lock()
        for action in actions or []:
            self.add_action(action)

    def add_action(self, action: BuildAction) -> None:
        """Add an action.

        Raises:
            ValueError: If an action with the same name already exists.
        """
        with self._lock:
            if action.name in self._actions:
                raise ValueError(f"Duplicate action name: {action.name}")
            self._actions[action.name] = action

    def validate(self) -> None:
        """Check that every dependency exists and the graph is acyclic.

        Raises:
            ValueError: If a dependency references a non-existent action.
            CyclicDependencyError: If the dependency graph contains a cycle.
        """
        with self._lock:
            for action in self._actions.values():
                for dep_name in (*action.dependencies, *action.after):
                    if dep_name not in self._actions:
                        raise ValueError(f"Action '{action.name}' depends on unknown action '{dep_name}'")
            self._detect_cycles()

    def _detect_cycles(self) -> None:
        """DFS with white/gray/black colouring."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[str, int] = {name: WHITE for name in self._actions}

        def dfs(name: str, path: list[str]) -> None:
            color[name] = GRAY
            path.append(name)
            action = self._actions[name]
            for dep_name in (*action.dependencies, *action.after):
                if color[dep_name] == GRAY:
                    cycle = path[path.index(dep_name) :] + [dep_name]
                    raise CyclicDependencyError(f"Cyclic dependency detected: {' -> '.join(cycle)}")
                if color[dep_name] == WHITE:
                    dfs(dep_name, path)
            path.pop()
            color[name] = BLACK

        for name in self._actions:
            if color[name] == WHITE:
                dfs(name, [])

    def get_ready_actions(self) -> list[BuildAction]:
        """WAITING actions whose dependencies are all DONE and whose ordering edges finished, in plan order."""
        finished = (ActionState.DONE, ActionState.FAILED)
        with self._lock:
            return [
                a
                for a in self._actions.values()
                if a.state == ActionState.WAITING
                and all(self._actions[d].state == ActionState.DONE for d in a.dependencies)
                and all(self._actions[d].state in finished for d in a.after)
            ]

    def get_blocked_actions(self) -> list[tuple[BuildAction, str]]:
        """WAITING actions with a FAILED dependency, paired with that dependency's name.

        These can never run and should be marked as failed. Ordering edges
        never block.
        """
        with self._lock:
            blocked = []
            for action in self._actions.values():
                if action.state != ActionState.WAITING:
                    continue
                for dep_name in action.dependencies:
                    if self._actions[dep_name].state == ActionState.FAILED:
                        blocked.append((action, dep_name))
                        break
            return blocked

    def mark_state(self, name: str, state: ActionState) -> None:
        """Update an action's state.

        Raises:
            KeyError: If the action name doesn't exist.
        """
        with self._lock:
            if name not in self._actions:
                raise KeyError(f"Unknown action: {name}")
            self._actions[name].state = state

    def get_action(self, name: str) -> BuildAction:
        with self._lock:
            if name not in self._actions:
                raise KeyError(f"Unknown action: {name}")
            return self._actions[name]

    def all_done(self) -> bool:
        """Whether every action is DONE or FAILED."""
        with self._lock:
            return all(a.state in (ActionState.DONE, ActionState.FAILED) for a in self._actions.values())

    def get_all_actions(self) -> list[BuildAction]:
        with self._lock:
            return list(self._actions.values())


class ActionScheduler:
    """Plans the minimal set of compile and link actions for a BuildGraph."""

    def __init__(self, evaluator: StalenessEvaluator):
        self.evaluator = evaluator

    def plan(self, graph: BuildGraph) -> BuildPlan:
        """Produce the BuildPlan for one invocation.

        Compile actions are emitted for the common pool first, then for each
        target in name order. A link action is emitted for every target that
        is stale given the planned compiles. Each link depends on the compiles
        feeding it. Executable links are also ordered after library links
        planned in the same run, but a failed library does not fail them.

        Args:
            graph: BuildGraph with dependency records attached

        Returns:
            Validated BuildPlan

        Raises:
            CyclicDependencyError: If the action graph contains a cycle
        """
        plan = BuildPlan()
        compile_names: dict[Path, str] = {}

        ordered: list[tuple[str, ObjectFile]] = [("", o) for o in graph.pool.objects]
        for target in sorted(graph.targets, key=lambda t: t.name):
            ordered.extend((target.name, o) for o in target.objects)

        for owner, obj in ordered:
            if obj.path in compile_names:
                continue
            reasons = self.evaluator.explain_compile(obj)
            if not reasons:
                continue
            action = BuildAction(
                name=compile_action_name(obj, graph),
                kind=ActionKind.COMPILE,
                job=CompileJob(
                    source=obj.source.path,
                    language=obj.source.language,
                    object_path=obj.path,
                    record_path=obj.record_path,
                ),
                target=owner,
                reasons=reasons,
            )
            compile_names[obj.path] = action.name
            plan.actions.append(action)

        library_names = tuple(lib.library_stem for lib in sorted(graph.libraries, key=lambda t: t.name))
        library_links: list[str] = []
        # Libraries first so executable links can depend on them
        for target in sorted(graph.targets, key=lambda t: (not t.is_library, t.name)):
            reasons = self.evaluator.explain_link(target, compile_names.keys())
            if not reasons:
                plan.up_to_date.append(target.name)
                continue

            dependencies = [compile_names[o.path] for o in target.all_objects if o.path in compile_names]

            action = BuildAction(
                name=link_action_name(target),
                kind=ActionKind.LINK,
                job=LinkJob(
                    target=target.name,
                    kind=target.kind,
                    directory=target.directory,
                    artifact_path=target.artifact_path,
                    objects=tuple(o.path for o in target.objects) + tuple(o.path for o in target.pool.objects),
                    libraries=() if target.is_library else library_names,
                ),
                target=target.name,
                dependencies=dependencies,
                after=[] if target.is_library else list(library_links),
                reasons=reasons,
            )
            if target.is_library:
                library_links.append(action.name)
            plan.actions.append(action)

        ActionGraph(plan.actions).validate()
        logger.debug(
            f"Planned {len(plan.compile_actions)} compile(s), {len(plan.link_actions)} link(s); "
            f"{len(plan.up_to_date)} target(s) up to date"
        )
        return plan
