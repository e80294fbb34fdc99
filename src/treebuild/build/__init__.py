"""Build engine.

Pipeline: ProjectScanner -> BuildGraphBuilder -> DependencyTracker ->
StalenessEvaluator -> ActionScheduler -> BuildExecutor -> ArtifactPublisher,
driven by BuildOrchestrator.
"""

from .build_context import BuildConfig, BuildContext
from .build_graph import BuildGraph, BuildGraphBuilder, CommonPool, ObjectFile, Target
from .build_profiles import BuildProfile
from .capability_probe import CapabilitySet, PkgConfigProbe, ProbeResult, resolve_capabilities
from .dependency_tracker import DependencyRecord, DependencyTracker, parse_depfile
from .error_collector import BuildError, ErrorCollector, ErrorSeverity
from .errors import (
    CompileError,
    ConfigError,
    CorruptDependencyRecord,
    CyclicDependencyError,
    LinkError,
    ProbeUnavailable,
    ScanError,
    TreebuildError,
)
from .executor import BuildExecutor
from .models import ActionKind, ActionState, BuildAction, BuildPlan, ExecutionReport
from .orchestrator import BuildOrchestrator, BuildResult
from .publisher import ArtifactPublisher
from .scheduler import ActionGraph, ActionScheduler
from .source_scanner import Language, ProjectScan, ProjectScanner, SourceFile, TargetKind
from .staleness import StalenessEvaluator
from .toolchain import CompileJob, CompileOutcome, GccToolchain, LinkJob, Toolchain

__all__ = [
    "ActionGraph",
    "ActionKind",
    "ActionScheduler",
    "ActionState",
    "ArtifactPublisher",
    "BuildAction",
    "BuildConfig",
    "BuildContext",
    "BuildError",
    "BuildExecutor",
    "BuildGraph",
    "BuildGraphBuilder",
    "BuildOrchestrator",
    "BuildPlan",
    "BuildProfile",
    "BuildResult",
    "CapabilitySet",
    "CommonPool",
    "CompileError",
    "CompileJob",
    "CompileOutcome",
    "ConfigError",
    "CorruptDependencyRecord",
    "CyclicDependencyError",
    "DependencyRecord",
    "DependencyTracker",
    "ErrorCollector",
    "ErrorSeverity",
    "ExecutionReport",
    "GccToolchain",
    "Language",
    "LinkError",
    "LinkJob",
    "ObjectFile",
    "PkgConfigProbe",
    "ProbeResult",
    "ProbeUnavailable",
    "ProjectScan",
    "ProjectScanner",
    "ScanError",
    "SourceFile",
    "StalenessEvaluator",
    "Target",
    "TargetKind",
    "Toolchain",
    "TreebuildError",
    "parse_depfile",
    "resolve_capabilities",
]
