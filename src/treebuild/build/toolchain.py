"""Compile and link capability.

The engine only talks to a Toolchain: ``compile(job)`` turns one source into
an object plus its dependency record, ``link(job)`` turns objects into one
artifact. GccToolchain drives a gcc-compatible driver pair (CC/CXX).

Compile command:
    <cc> -I<source dir> <FLAGS> -MMD -MP -MF <record> -I<inc...> -I<src>
         <CFLAGS|CXXFLAGS> <capability cflags> -c <source> -o <object>

Link command (always the C++ driver):
    <cxx> -I<src/target> <FLAGS> <CXXFLAGS> [-shared] -o <artifact>
          <own objects> <common objects> -L<lib...> [libraries] <LDFLAGS>
          <capability ldflags>
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..subprocess_utils import format_command, safe_run
from .build_context import BuildContext
from .errors import CompileError, LinkError
from .source_scanner import Language, TargetKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileJob:
    """Everything needed to compile one source.

    Attributes:
        source: Source file
        language: C or C++
        object_path: Object to produce
        record_path: Dependency record to produce
    """

    source: Path
    language: Language
    object_path: Path
    record_path: Path


@dataclass(frozen=True)
class CompileOutcome:
    """Result of a successful compile."""

    object_path: Path
    record_path: Path
    command: list[str] = field(default_factory=list)
    warnings: str = ""


@dataclass(frozen=True)
class LinkJob:
    """Everything needed to link one target.

    Attributes:
        target: Target name
        kind: EXECUTABLE or LIBRARY
        directory: Target's source directory (added as -I)
        artifact_path: Artifact to produce
        objects: Own objects followed by common-pool objects
        libraries: Library names to link against with -l (executables only)
    """

    target: str
    kind: TargetKind
    directory: Path
    artifact_path: Path
    objects: tuple[Path, ...]
    libraries: tuple[str, ...] = ()


@runtime_checkable
class Toolchain(Protocol):
    """Compile/link capability used by the executor."""

    def compile(self, job: CompileJob) -> CompileOutcome:
        """Compile one source.

        Raises:
            CompileError: If the compiler fails; no object or record is left behind
        """
        ...

    def link(self, job: LinkJob) -> Path:
        """Link one target and return the artifact path.

        Raises:
            LinkError: If the linker fails; no artifact is left behind
        """
        ...


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class GccToolchain:
    """Drives CC/CXX as subprocesses from the project directory."""

    def __init__(self, context: BuildContext):
        self.context = context
        self.config = context.config

    def _rel(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.config.project_dir)
        except ValueError:
            return str(path)

    def compile_command(self, job: CompileJob) -> list[str]:
        config = self.config
        if job.language == Language.C:
            driver, language_flags = config.cc, config.cflags
        else:
            driver, language_flags = config.cxx, config.cxxflags

        cmd = [driver, f"-I{self._rel(job.source.parent)}"]
        cmd.extend(self.context.compile_flags)
        cmd.extend(["-MMD", "-MP", "-MF", self._rel(job.record_path)])
        cmd.extend(f"-I{self._rel(p)}" for p in self.context.include_paths)
        cmd.append(f"-I{self._rel(config.sources_root)}")
        cmd.extend(language_flags)
        cmd.extend(self.context.capabilities.cflags)
        cmd.extend(["-c", self._rel(job.source), "-o", self._rel(job.object_path)])
        return cmd

    def link_command(self, job: LinkJob, output: Path) -> list[str]:
        config = self.config
        cmd = [config.cxx, f"-I{self._rel(job.directory)}"]
        cmd.extend(self.context.link_flags)
        cmd.extend(config.cxxflags)
        if job.kind == TargetKind.LIBRARY:
            cmd.append("-shared")
        cmd.extend(["-o", self._rel(output)])
        cmd.extend(self._rel(p) for p in job.objects)
        cmd.extend(f"-L{self._rel(p)}" for p in self.context.library_paths)
        if job.libraries:
            cmd.append(f"-L{self._rel(config.artifact_root)}")
            cmd.extend(f"-l{name}" for name in job.libraries)
            cmd.append("-Wl,-rpath,$ORIGIN")
        cmd.extend(config.ldflags)
        cmd.extend(self.context.capabilities.ldflags)
        return cmd

    def compile(self, job: CompileJob) -> CompileOutcome:
        job.object_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.compile_command(job)
        logger.debug(f"Compile: {format_command(cmd)}")

        try:
            result = safe_run(cmd, cwd=self.config.project_dir, capture_output=True, text=True)
        except OSError as e:
            raise CompileError(job.source, f"cannot run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            _remove(job.object_path)
            _remove(job.record_path)
            raise CompileError(
                job.source,
                f"{cmd[0]} exited with code {result.returncode}",
                stderr=(result.stderr or "") + (result.stdout or ""),
            )

        return CompileOutcome(
            object_path=job.object_path,
            record_path=job.record_path,
            command=cmd,
            warnings=result.stderr or "",
        )

    def link(self, job: LinkJob) -> Path:
        artifact = job.artifact_path
        artifact.parent.mkdir(parents=True, exist_ok=True)
        temp_path = artifact.with_name(f".{artifact.name}.tmp")
        cmd = self.link_command(job, temp_path)
        logger.debug(f"Link: {format_command(cmd)}")

        error: Optional[LinkError] = None
        try:
            result = safe_run(cmd, cwd=self.config.project_dir, capture_output=True, text=True)
            if result.returncode != 0:
                error = LinkError(
                    job.target,
                    f"{cmd[0]} exited with code {result.returncode}",
                    stderr=(result.stderr or "") + (result.stdout or ""),
                )
        except OSError as e:
            error = LinkError(job.target, f"cannot run {cmd[0]}: {e}")

        if error is not None:
            # An old artifact would look newer than its objects on the next run
            _remove(temp_path)
            _remove(artifact)
            raise error

        os.replace(temp_path, artifact)
        return artifact
