"""Build orchestration for convention-laid-out C/C++ trees.

One invocation runs five phases:

    [1/5] probe      optional capabilities (pkg-config)
    [2/5] scan       source tree -> ProjectScan -> BuildGraph
    [3/5] plan       dependency records + staleness -> BuildPlan
    [4/5] build      compile and link actions on the worker pool
    [5/5] publish    convenience links at the project root

Nothing except objects, dependency records and artifacts persists between
runs; the graph is rebuilt from the filesystem every time.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..output import (
    TimedLogger,
    log,
    log_build_complete,
    log_detail,
    log_error,
    log_file,
    log_phase,
    log_success,
    log_warning,
)
from .build_context import BuildConfig, BuildContext
from .build_graph import BuildGraph, BuildGraphBuilder
from .build_profiles import format_profile_banner
from .capability_probe import CapabilityProbe, CapabilitySet, PkgConfigProbe, resolve_capabilities
from .dependency_tracker import DependencyTracker
from .error_collector import ErrorCollector
from .errors import ScanError
from .executor import BuildExecutor
from .models import ActionState, BuildAction, BuildPlan, ExecutionReport
from .publisher import ArtifactPublisher
from .scheduler import ActionScheduler
from .source_scanner import ProjectScanner
from .staleness import StalenessEvaluator
from .toolchain import GccToolchain, Toolchain

logger = logging.getLogger(__name__)

TOTAL_PHASES = 5


@dataclass
class BuildResult:
    """Result of a build, rebuild, clean or inspect.

    Attributes:
        success: True if no target failed
        built_targets: Targets linked in this run
        failed_targets: Targets whose link failed or was skipped
        up_to_date: Targets that needed no link
        compiled: Number of objects compiled
        build_time: Seconds taken
        message: One-line summary
        errors: Collected problems (warnings included)
        graph: Build graph (inspect and build)
        plan: Planned actions (inspect and build)
        capabilities: Probe outcome
    """

    success: bool
    built_targets: list[str] = field(default_factory=list)
    failed_targets: list[str] = field(default_factory=list)
    up_to_date: list[str] = field(default_factory=list)
    compiled: int = 0
    build_time: float = 0.0
    message: str = ""
    errors: Optional[ErrorCollector] = None
    graph: Optional[BuildGraph] = None
    plan: Optional[BuildPlan] = None
    capabilities: Optional[CapabilitySet] = None

    @property
    def linked(self) -> int:
        return len(self.built_targets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "built_targets": list(self.built_targets),
            "failed_targets": list(self.failed_targets),
            "up_to_date": list(self.up_to_date),
            "compiled": self.compiled,
            "linked": self.linked,
            "build_time": self.build_time,
            "message": self.message,
        }


class ConsoleCallback:
    """Reports action transitions on the console.

    Verbose runs log every action; otherwise a tqdm bar counts finished
    actions and only failures are printed.
    """

    def __init__(self, total: int, verbose: bool):
        self.verbose = verbose
        self._bar = None
        if not verbose and total:
            from tqdm import tqdm

            # disable=None turns the bar off when stderr is not a terminal
            self._bar = tqdm(total=total, desc="Building", unit="action", ncols=80, leave=False, disable=None)

    def on_action_started(self, action: BuildAction) -> None:
        log_file(action.kind.value, action.name.split(":", 1)[1])
        for reason in action.reasons:
            log_detail(f"  {reason}", indent=8, verbose_only=True)

    def on_action_finished(self, action: BuildAction) -> None:
        if self._bar is not None:
            self._bar.update(1)
        if action.state != ActionState.FAILED:
            return
        if self._bar is not None:
            self._bar.clear()
        log_error(f"{action.name}: {action.error_message}")
        if action.stderr:
            for line in action.stderr.rstrip().splitlines():
                log_detail(line)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()


class BuildOrchestrator:
    """Runs build, rebuild, clean and inspect on one project.

    Args:
        config: Project configuration
        toolchain_factory: Builds the Toolchain from the BuildContext
            (defaults to GccToolchain)
        probe: Capability probe (defaults to PkgConfigProbe)
    """

    def __init__(
        self,
        config: BuildConfig,
        toolchain_factory: Optional[Callable[[BuildContext], Toolchain]] = None,
        probe: Optional[CapabilityProbe] = None,
    ):
        self.config = config
        self.toolchain_factory = toolchain_factory or GccToolchain
        self.probe = probe or PkgConfigProbe()
        self.publisher = ArtifactPublisher(config.project_dir)

    def _probe_capabilities(self, errors: ErrorCollector) -> CapabilitySet:
        if not self.config.probes:
            log_detail("No optional capabilities requested", verbose_only=True)
            return CapabilitySet()
        capabilities = resolve_capabilities(self.probe, self.config.probes, errors)
        for result in capabilities.available:
            log_detail(f"{result.name} {result.version or ''}".rstrip() + ": available")
        for name in capabilities.unsupported:
            log_warning(f"Capability {name} unavailable, building without it")
        return capabilities

    def _scan(self, errors: ErrorCollector) -> BuildGraph:
        """Scan the tree and build the graph.

        Raises:
            ScanError: If the sources root cannot be read
        """
        scan = ProjectScanner(self.config).scan()
        graph = BuildGraphBuilder(self.config).build(scan)

        for source in graph.loose_sources:
            log_warning(f"{source.path.name} is not inside a target directory; ignored")
            errors.warn("scan", "source outside any target directory", file_path=str(source.path))
        for skipped in graph.skipped:
            log_warning(f"Skipping {skipped.name}: {skipped.reason}")
            errors.warn("graph", skipped.reason, target=skipped.name)

        log_detail(
            f"{len(graph.executables)} executable(s), {len(graph.libraries)} library target(s), "
            f"{len(graph.pool.objects)} common source(s)"
        )
        return graph

    def _plan(self, graph: BuildGraph, errors: ErrorCollector) -> BuildPlan:
        tracker = DependencyTracker(self.config.project_dir, errors)
        tracker.enrich(graph)
        return ActionScheduler(StalenessEvaluator(tracker)).plan(graph)

    def build(self) -> BuildResult:
        """Bring every target up to date with the minimal set of actions.

        Raises:
            ScanError: If the sources root cannot be read
            KeyboardInterrupt: If interrupted (pending actions are cancelled)
        """
        start_time = time.time()
        errors = ErrorCollector()
        config = self.config
        log(format_profile_banner(config.profile, config.cc), verbose_only=True)

        log_phase(1, TOTAL_PHASES, "Probing capabilities...", verbose_only=not config.probes)
        capabilities = self._probe_capabilities(errors)

        log_phase(2, TOTAL_PHASES, "Scanning source tree...")
        graph = self._scan(errors)
        if not graph.targets:
            log_warning(f"No targets found in {config.sources_root}")
            return BuildResult(
                success=True,
                build_time=time.time() - start_time,
                message="Nothing to build",
                errors=errors,
                graph=graph,
                capabilities=capabilities,
            )

        log_phase(3, TOTAL_PHASES, "Checking dependencies...")
        plan = self._plan(graph, errors)
        for name in plan.up_to_date:
            log_file("link", name, cached=True)
        log_detail(f"{len(plan.compile_actions)} compile(s), {len(plan.link_actions)} link(s) needed")

        context = BuildContext.from_config(
            config,
            capabilities,
            include_paths=tuple(graph.include_paths),
            library_paths=tuple(graph.library_paths),
        )
        callback = ConsoleCallback(total=len(plan.actions), verbose=config.verbose)
        executor = BuildExecutor(self.toolchain_factory(context), jobs=config.jobs, callback=callback, error_collector=errors)
        with TimedLogger("Compiling and linking", phase=(4, TOTAL_PHASES)):
            try:
                report = executor.run(plan)
            finally:
                callback.close()

        log_phase(5, TOTAL_PHASES, "Publishing links...", verbose_only=not config.publish_links)
        if config.publish_links:
            self._publish(graph, report, errors)

        result = self._result(plan, report, errors, time.time() - start_time)
        result.graph = graph
        result.capabilities = capabilities
        self._report(result)
        return result

    def _publish(self, graph: BuildGraph, report: ExecutionReport, errors: ErrorCollector) -> None:
        failed = set(report.failed_targets)
        for target in graph.executables:
            if target.name in failed or not target.artifact_path.exists():
                continue
            try:
                link = self.publisher.publish_link(target.artifact_path, target.link_name)
                log_file("link", link.name, verbose_only=True)
            except OSError as e:
                log_warning(f"Cannot publish {target.link_name}: {e}")
                errors.warn("publish", str(e), file_path=str(target.artifact_path), target=target.name)

    def _result(self, plan: BuildPlan, report: ExecutionReport, errors: ErrorCollector, build_time: float) -> BuildResult:
        failed = report.failed_targets
        if failed:
            message = f"{len(failed)} target(s) failed: {', '.join(failed)}"
        elif plan.is_empty:
            message = "All targets up to date"
        else:
            message = f"Built {len(report.linked_targets)} target(s), compiled {report.compiled_count} file(s)"
        return BuildResult(
            success=not failed and report.success,
            built_targets=report.linked_targets,
            failed_targets=failed,
            up_to_date=list(plan.up_to_date),
            compiled=report.compiled_count,
            build_time=build_time,
            message=message,
            errors=errors,
            plan=plan,
        )

    def _report(self, result: BuildResult) -> None:
        if result.success:
            log_success(result.message)
        else:
            log_error(result.message)
        errors = result.errors
        if errors is not None:
            if errors.has_errors():
                log_detail(f"{len(errors.get_compilation_errors())} compile error(s), {len(errors.get_link_errors())} link error(s)")
            if errors.has_warnings():
                log_detail(errors.format_summary())
        log_build_complete(result.build_time)

    def rebuild(self) -> BuildResult:
        """Clean, then build everything from scratch."""
        self.clean()
        return self.build()

    def clean(self) -> BuildResult:
        """Remove the object cache, the artifacts and the published links."""
        start_time = time.time()
        try:
            link_names = [t.name for t in ProjectScanner(self.config).scan().executables]
        except ScanError as e:
            logger.debug(f"No link names for clean: {e}")
            link_names = []

        removed = self.publisher.clean(self.config.object_root, self.config.artifact_root, link_names)
        for path in removed:
            log_file("remove", path.name)
        message = f"Removed {len(removed)} path(s)" if removed else "Nothing to clean"
        log_success(message)
        return BuildResult(success=True, build_time=time.time() - start_time, message=message)

    def inspect(self) -> BuildResult:
        """Scan and plan without running any tool.

        Raises:
            ScanError: If the sources root cannot be read
        """
        start_time = time.time()
        errors = ErrorCollector()
        graph = self._scan(errors)
        plan = self._plan(graph, errors)
        stale = sorted({a.target for a in plan.link_actions})
        return BuildResult(
            success=True,
            up_to_date=list(plan.up_to_date),
            build_time=time.time() - start_time,
            message=f"{len(plan.compile_actions)} compile(s), {len(plan.link_actions)} link(s) pending"
            + (f" for {', '.join(stale)}" if stale else ""),
            errors=errors,
            graph=graph,
            plan=plan,
        )
