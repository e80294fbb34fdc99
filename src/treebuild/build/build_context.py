"""Build Context - Aggregated build configuration.

This module defines:
- BuildConfig: Immutable project configuration (directory convention,
  compilers, flags, profile) resolved once from the CLI and environment
- BuildContext: BuildConfig plus the capability flags discovered by the
  probe step, created by the orchestrator before graph construction

Design:
    Nothing in the engine reads os.environ or module globals. BuildConfig is
    threaded explicitly through the scanner, graph builder and scheduler, and
    BuildContext through the toolchain, so several trees can be built in one
    process (the test-suite does exactly that).
"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Optional

from .build_profiles import BuildProfile, ProfileFlags, get_profile, merge_compile_flags, merge_link_flags
from .errors import ConfigError

if TYPE_CHECKING:
    from .capability_probe import CapabilitySet


C_EXTENSIONS = (".c",)
CXX_EXTENSIONS = (".cpp", ".cc", ".cxx")

OBJECT_SUFFIX = ".o"
RECORD_SUFFIX = ".d"


@dataclass(frozen=True)
class BuildConfig:
    """Project configuration for one source tree.

    Attributes:
        project_dir: Project root; all directory names are relative to it
        src_dir: Sources root (targets are its depth-1 subdirectories)
        inc_dir: Include root (it and its depth-1 subdirectories become -I paths)
        lib_dir: Library-search root (it and its depth-1 subdirectories become -L paths)
        obj_dir: Object-cache root mirroring the source tree
        build_dir: Artifact-output root
        common: Reserved name of the shared-source subdirectory
        library_suffix: Reserved suffix marking a Library target directory
        cc: C compiler driver
        cxx: C++ compiler driver (also used for every link)
        flags: General flags passed to every compile and link (FLAGS)
        cflags: C-only compile flags (CFLAGS)
        cxxflags: C++ compile flags, also passed to the link (CXXFLAGS)
        ldflags: Linker flags appended after the objects (LDFLAGS)
        profile: Build profile controlling the optimisation level
        probes: Optional dependencies to probe for before building
        jobs: Worker count for the action pool (None = CPU count)
        verbose: Whether to log every action
        publish_links: Whether to create convenience links at the project root
    """

    project_dir: Path
    src_dir: str = "src"
    inc_dir: str = "inc"
    lib_dir: str = "lib"
    obj_dir: str = "obj"
    build_dir: str = "build"
    common: str = "common"
    library_suffix: str = "_lib"
    cc: str = "gcc"
    cxx: str = "g++"
    flags: tuple[str, ...] = ("-fPIC", "-g3")
    cflags: tuple[str, ...] = ("--std=c99",)
    cxxflags: tuple[str, ...] = ("--std=c++98",)
    ldflags: tuple[str, ...] = ()
    profile: BuildProfile = BuildProfile.RELEASE
    probes: tuple[str, ...] = ()
    jobs: Optional[int] = None
    verbose: bool = False
    publish_links: bool = True

    def __post_init__(self) -> None:
        root = Path(self.project_dir).resolve()
        # Objects are named after their path below the project, and clean deletes obj/ and build/
        for option, value in (("src_dir", self.src_dir), ("obj_dir", self.obj_dir), ("build_dir", self.build_dir)):
            path = (root / value).resolve()
            if root not in path.parents:
                raise ConfigError(f"{option} must be a subdirectory of the project {root}: {value}")

    @classmethod
    def from_environment(
        cls,
        project_dir: Path,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "BuildConfig":
        """Create a BuildConfig honouring the conventional make variables.

        CC, CXX, FLAGS, CFLAGS, CXXFLAGS and LDFLAGS override the defaults when
        set (an empty value is a valid override). Keyword overrides (from the
        CLI) take precedence over the environment; None values are ignored.

        Args:
            project_dir: Project root directory
            environ: Environment mapping (defaults to os.environ)
            **overrides: BuildConfig field overrides

        Returns:
            Resolved BuildConfig

        Raises:
            ConfigError: If the sources, object or artifact root is not inside the project
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        for var, name in (("CC", "cc"), ("CXX", "cxx")):
            if env.get(var):
                values[name] = env[var]

        for var, name in (("FLAGS", "flags"), ("CFLAGS", "cflags"), ("CXXFLAGS", "cxxflags"), ("LDFLAGS", "ldflags")):
            if var in env:
                values[name] = tuple(shlex.split(env[var]))

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(project_dir=Path(project_dir).resolve(), **values)

    @property
    def sources_root(self) -> Path:
        return self.project_dir / self.src_dir

    @property
    def common_root(self) -> Path:
        return self.sources_root / self.common

    @property
    def include_root(self) -> Path:
        return self.project_dir / self.inc_dir

    @property
    def library_root(self) -> Path:
        return self.project_dir / self.lib_dir

    @property
    def object_root(self) -> Path:
        return self.project_dir / self.obj_dir

    @property
    def artifact_root(self) -> Path:
        return self.project_dir / self.build_dir

    @property
    def profile_flags(self) -> ProfileFlags:
        return get_profile(self.profile)

    @property
    def compile_flags(self) -> list[str]:
        """FLAGS with the profile's optimisation flags merged in."""
        return merge_compile_flags(list(self.flags), self.profile_flags)

    @property
    def link_flags(self) -> list[str]:
        """FLAGS with the profile's link flags merged in."""
        return merge_link_flags(list(self.flags), self.profile_flags)

    def is_library_dir(self, name: str) -> bool:
        """Whether a target directory name carries the reserved library suffix."""
        return bool(self.library_suffix) and name.endswith(self.library_suffix) and name != self.library_suffix


@dataclass(frozen=True)
class BuildContext:
    """Full build context consumed by the toolchain.

    Created by the orchestrator after the capability probe step, combining
    the BuildConfig with the probe-derived flags. Every compile and link
    action reads the same BuildContext, so optional capabilities never add
    conditional logic to action execution.

    Attributes:
        config: Project configuration
        capabilities: Flags and defines contributed by available capabilities
        include_paths: Resolved -I search directories
        library_paths: Resolved -L search directories
    """

    config: BuildConfig
    capabilities: "CapabilitySet"
    include_paths: tuple[Path, ...] = field(default_factory=tuple)
    library_paths: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(
        cls,
        config: BuildConfig,
        capabilities: "CapabilitySet",
        include_paths: tuple[Path, ...] = (),
        library_paths: tuple[Path, ...] = (),
    ) -> "BuildContext":
        """Create a BuildContext from a BuildConfig plus probe results."""
        return cls(
            config=config,
            capabilities=capabilities,
            include_paths=tuple(include_paths),
            library_paths=tuple(library_paths),
        )

    @property
    def compile_flags(self) -> tuple[str, ...]:
        """FLAGS with the profile applied; capability cflags follow the language flags."""
        return tuple(self.config.compile_flags)

    @property
    def link_flags(self) -> tuple[str, ...]:
        """FLAGS with the profile applied; capability ldflags follow the objects."""
        return tuple(self.config.link_flags)
