"""Build executor: runs a BuildPlan on a worker pool.

Ready actions (all prerequisites DONE) are submitted to a ThreadPoolExecutor.
Independent compiles run concurrently, and so do links of distinct targets.
A failed action fails every action that depends on it; unrelated actions
keep running. An executable link ordered after a failed library link still
runs, without that library. Only Ctrl-C stops the build early.
"""

import logging
import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Any, Optional

from ..output import log_warning
from .callbacks import ActionCallback, NullCallback
from .error_collector import BuildError, ErrorCollector, ErrorSeverity
from .errors import CompileError, LinkError
from .models import ActionState, BuildAction, BuildPlan, ExecutionReport
from .scheduler import ActionGraph
from .toolchain import CompileJob, LinkJob, Toolchain

logger = logging.getLogger(__name__)


def default_jobs() -> int:
    return os.cpu_count() or 1


class BuildExecutor:
    """Executes planned actions respecting their dependencies.

    Args:
        toolchain: Compile/link capability
        jobs: Worker count (None = CPU count)
        callback: Receives action transitions
        error_collector: Receives compile/link failures
    """

    def __init__(
        self,
        toolchain: Toolchain,
        jobs: Optional[int] = None,
        callback: Optional[ActionCallback] = None,
        error_collector: Optional[ErrorCollector] = None,
    ):
        self.toolchain = toolchain
        self.jobs = max(1, jobs or default_jobs())
        self.callback = callback or NullCallback()
        self.error_collector = error_collector

    def run(self, plan: BuildPlan) -> ExecutionReport:
        """Run every action of the plan.

        Returns:
            ExecutionReport with the final state of each action

        Raises:
            KeyboardInterrupt: After cancelling pending actions
        """
        start_time = time.monotonic()
        if plan.is_empty:
            return ExecutionReport(actions=[], total_elapsed=0.0, success=True)

        graph = ActionGraph(plan.actions)
        graph.validate()

        active: dict[Future[Any], BuildAction] = {}
        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="treebuild") as pool:
            try:
                while not graph.all_done():
                    self._fail_blocked(graph)

                    for action in graph.get_ready_actions():
                        self._drop_failed_libraries(graph, action)
                        action.mark_started()
                        self.callback.on_action_started(action)
                        active[pool.submit(self._perform, action)] = action

                    if not active:
                        continue

                    done, _ = wait(list(active), return_when=FIRST_COMPLETED)
                    for future in done:
                        self._complete(active.pop(future), future)

            except KeyboardInterrupt:
                for future in active:
                    future.cancel()
                for action in graph.get_all_actions():
                    if action.state in (ActionState.WAITING, ActionState.RUNNING):
                        action.fail("Interrupted by user")
                raise

        actions = graph.get_all_actions()
        return ExecutionReport(
            actions=actions,
            total_elapsed=time.monotonic() - start_time,
            success=all(a.state == ActionState.DONE for a in actions),
        )

    def _drop_failed_libraries(self, graph: ActionGraph, action: BuildAction) -> None:
        """Leave libraries whose link failed in this run out of an executable link."""
        if not isinstance(action.job, LinkJob) or not action.after:
            return
        failed = sorted(graph.get_action(name).target for name in action.after if graph.get_action(name).state == ActionState.FAILED)
        if not failed:
            return
        message = f"linking without failed library link(s): {', '.join(failed)}"
        log_warning(f"{action.target}: {message}")
        if self.error_collector is not None:
            self.error_collector.warn("link", message, target=action.target)
        action.job = replace(action.job, libraries=tuple(n for n in action.job.libraries if n not in failed))

    def _perform(self, action: BuildAction) -> Any:
        if isinstance(action.job, CompileJob):
            return self.toolchain.compile(action.job)
        return self.toolchain.link(action.job)

    def _complete(self, action: BuildAction, future: Future[Any]) -> None:
        try:
            future.result()
        except (CompileError, LinkError) as e:
            self._record_failure(action, str(e), e.stderr)
        except KeyboardInterrupt:
            raise
        except Exception as e:
            logger.exception(f"Unexpected failure in {action.name}")
            self._record_failure(action, f"{type(e).__name__}: {e}", None)
        else:
            action.finish()
            self.callback.on_action_finished(action)

    def _record_failure(self, action: BuildAction, message: str, stderr: Optional[str]) -> None:
        action.fail(message, stderr)
        if self.error_collector is not None:
            file_path = action.job.source if isinstance(action.job, CompileJob) else action.job.artifact_path
            self.error_collector.add_error(
                BuildError(
                    severity=ErrorSeverity.ERROR,
                    phase=action.kind.value,
                    file_path=str(file_path),
                    error_message=message,
                    target=action.target or None,
                    stderr=stderr,
                )
            )
        self.callback.on_action_finished(action)

    def _fail_blocked(self, graph: ActionGraph) -> None:
        # Repeat until stable: failing one action can block another
        while True:
            blocked = graph.get_blocked_actions()
            if not blocked:
                return
            for action, dep_name in blocked:
                action.fail(f"Dependency '{dep_name}' failed")
                self.callback.on_action_finished(action)
