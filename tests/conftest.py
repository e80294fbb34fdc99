"""Pytest configuration and fixtures for treebuild tests.

The engine is exercised end-to-end without a C compiler: FakeToolchain
"compiles" a source by writing an object file plus a make-style dependency
record listing every ``#include "..."`` it reaches, and "links" by writing
an artifact that names its objects.

Freshness is controlled explicitly with os.utime: ``backdate`` pushes every
file of a project into the past after a build, and ``touch`` marks one file
as modified (newer than the backdated outputs, older than anything written
afterwards).
"""

import os
import re
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pytest

from treebuild import output
from treebuild.build import BuildConfig, BuildContext, BuildOrchestrator, CompileError, LinkError
from treebuild.build.toolchain import CompileJob, CompileOutcome, LinkJob

_INCLUDE = re.compile(r'^\s*#\s*include\s+"([^"]+)"', re.MULTILINE)

# Source tree of the worked example
EXAMPLE_FILES = {
    "src/common/util.c": '#include "util.h"\nint util(void) { return 1; }\n',
    "src/common/util.h": "int util(void);\n",
    "src/appA/main.c": '#include "common/util.h"\n#include "config.h"\nint main(void) { return util(); }\n',
    "src/appB/main.cpp": '#include "common/util.h"\nint main() { return util(); }\n',
    "inc/config.h": "#define CONFIG 1\n",
}


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def _backdate(root: Path, seconds: float = 100.0) -> None:
    """Set the mtime of every file under root to ``seconds`` in the past."""
    stamp = time.time() - seconds
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            if not path.is_symlink():
                os.utime(path, (stamp, stamp))


def _touch(path: Path, seconds_ago: float = 10.0) -> None:
    """Mark a file modified: newer than backdated files, older than new outputs."""
    stamp = time.time() - seconds_ago
    os.utime(path, (stamp, stamp))


class FakeToolchain:
    """Toolchain double writing objects, records and artifacts without a compiler."""

    def __init__(self, context: BuildContext, recorder: "FakeToolchainFactory"):
        self.context = context
        self.recorder = recorder
        self.project_dir = context.config.project_dir

    def _rel(self, path: Path) -> str:
        return os.path.relpath(path, self.project_dir)

    def _find(self, name: str, including_dir: Path) -> Optional[Path]:
        search = [including_dir, *self.context.include_paths, self.context.config.sources_root]
        for directory in search:
            candidate = directory / name
            if candidate.is_file():
                return Path(os.path.normpath(candidate))
        return None

    def _headers(self, source: Path) -> list[Path]:
        found: list[Path] = []
        pending = [source]
        while pending:
            current = pending.pop()
            for name in _INCLUDE.findall(current.read_text()):
                header = self._find(name, current.parent)
                if header is not None and header not in found:
                    found.append(header)
                    pending.append(header)
        return found

    def compile(self, job: CompileJob) -> CompileOutcome:
        self.recorder.record_compile(job.source)
        text = job.source.read_text()
        if "#error" in text or job.source.name in self.recorder.fail_compile:
            for path in (job.object_path, job.record_path):
                if path.exists():
                    path.unlink()
            raise CompileError(job.source, "fake compiler exited with code 1", stderr=f"{job.source.name}: error")

        headers = self._headers(job.source)
        job.object_path.parent.mkdir(parents=True, exist_ok=True)
        job.object_path.write_text(f"object of {self._rel(job.source)}\n")
        prerequisites = " \\\n  ".join([self._rel(job.source)] + [self._rel(h) for h in headers])
        phony = "".join(f"{self._rel(h)}:\n" for h in headers)
        job.record_path.write_text(f"{self._rel(job.object_path)}: {prerequisites}\n{phony}")
        return CompileOutcome(object_path=job.object_path, record_path=job.record_path)

    def link(self, job: LinkJob) -> Path:
        self.recorder.record_link(job.target)
        missing = [p for p in job.objects if not p.exists()]
        if missing or job.target in self.recorder.fail_link:
            if job.artifact_path.exists():
                job.artifact_path.unlink()
            raise LinkError(job.target, "fake linker exited with code 1", stderr="undefined reference")
        job.artifact_path.parent.mkdir(parents=True, exist_ok=True)
        lines = [job.kind.value] + [self._rel(p) for p in job.objects] + [f"-l{n}" for n in job.libraries]
        job.artifact_path.write_text("\n".join(lines) + "\n")
        return job.artifact_path


class FakeToolchainFactory:
    """Creates FakeToolchains and records every compile and link they run."""

    def __init__(self) -> None:
        self.compiled: list[Path] = []
        self.linked: list[str] = []
        self.fail_compile: set[str] = set()
        self.fail_link: set[str] = set()
        self._lock = threading.Lock()

    def __call__(self, context: BuildContext) -> FakeToolchain:
        return FakeToolchain(context, self)

    def record_compile(self, source: Path) -> None:
        with self._lock:
            self.compiled.append(source)

    def record_link(self, target: str) -> None:
        with self._lock:
            self.linked.append(target)

    def reset(self) -> None:
        with self._lock:
            self.compiled.clear()
            self.linked.clear()

    @property
    def compiled_names(self) -> list[str]:
        return sorted(f"{p.parent.name}/{p.name}" for p in self.compiled)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """The worked example: common/util.c, appA/main.c, appB/main.cpp."""
    root = tmp_path / "project"
    write_files(root, EXAMPLE_FILES)
    return root


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Factory creating a project from a {relative path: content} mapping."""

    def _make(files: dict[str, str], name: str = "custom") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        write_files(root, files)
        return root

    return _make


@pytest.fixture
def toolchain() -> FakeToolchainFactory:
    return FakeToolchainFactory()


@pytest.fixture
def make_orchestrator(toolchain: FakeToolchainFactory) -> Callable[..., BuildOrchestrator]:
    """Factory for orchestrators wired to the fake toolchain and an empty environment."""

    def _make(project_dir: Path, environ: Optional[dict[str, str]] = None, **overrides) -> BuildOrchestrator:
        overrides.setdefault("jobs", 2)
        config = BuildConfig.from_environment(project_dir, environ=environ or {}, **overrides)
        return BuildOrchestrator(config, toolchain_factory=toolchain)

    return _make


@pytest.fixture
def backdate() -> Callable[..., None]:
    return _backdate


@pytest.fixture
def touch() -> Callable[..., None]:
    return _touch


@pytest.fixture(autouse=True)
def reset_output_module():
    """Point console output back at sys.stdout so no test writes to a closed capture stream."""
    yield
    output._output_stream = sys.stdout
    output.set_verbose(True)
