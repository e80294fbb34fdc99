"""Unit tests for the gcc toolchain driver (subprocess mocked)."""

import subprocess
from pathlib import Path

import pytest

from treebuild.build import BuildConfig, BuildContext, CapabilitySet, CompileError, GccToolchain, Language, LinkError, TargetKind
from treebuild.build import toolchain as toolchain_module
from treebuild.build.toolchain import CompileJob, LinkJob


@pytest.fixture
def context(tmp_path):
    config = BuildConfig.from_environment(
        tmp_path,
        environ={"CC": "clang", "CXX": "clang++", "FLAGS": "-O2 -Wall", "LDFLAGS": "-lm"},
    )
    root = config.project_dir
    return BuildContext.from_config(
        config,
        CapabilitySet(cflags=("-I/opt/z", "-DHAVE_ZLIB=1"), ldflags=("-lz",)),
        include_paths=(root / "inc", root / "inc/net"),
        library_paths=(root / "lib",),
    )


def _compile_job(context, name="src/app/main.c", language=Language.C):
    root = context.config.project_dir
    return CompileJob(
        source=root / name,
        language=language,
        object_path=root / "obj" / (name + ".o"),
        record_path=root / "obj" / (name + ".d"),
    )


def _link_job(context, kind=TargetKind.EXECUTABLE, libraries=()):
    root = context.config.project_dir
    name = "app" if kind == TargetKind.EXECUTABLE else "m_lib"
    artifact = root / "build" / (name if kind == TargetKind.EXECUTABLE else f"lib{name}.so")
    return LinkJob(
        target=name,
        kind=kind,
        directory=root / "src" / name,
        artifact_path=artifact,
        objects=(root / "obj/src/app/main.c.o", root / "obj/src/common/util.c.o"),
        libraries=libraries,
    )


class FakeRun:
    """Stands in for safe_run; ``output`` files are created on success."""

    def __init__(self, returncode=0, stderr=""):
        self.returncode = returncode
        self.stderr = stderr
        self.commands: list[list[str]] = []

    def __call__(self, cmd, cwd=None, **kwargs):
        self.commands.append(cmd)
        if self.returncode == 0 and "-o" in cmd:
            output = Path(cwd) / cmd[cmd.index("-o") + 1]
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text("binary")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)


class TestCompileCommand:
    def test_c_command_layout(self, context):
        cmd = GccToolchain(context).compile_command(_compile_job(context))
        assert cmd == [
            "clang",
            "-Isrc/app",
            "-Wall",
            "-O3",
            "-MMD",
            "-MP",
            "-MF",
            "obj/src/app/main.c.d",
            "-Iinc",
            "-Iinc/net",
            "-Isrc",
            "--std=c99",
            "-I/opt/z",
            "-DHAVE_ZLIB=1",
            "-c",
            "src/app/main.c",
            "-o",
            "obj/src/app/main.c.o",
        ]

    def test_cxx_uses_cxx_driver_and_flags(self, context):
        cmd = GccToolchain(context).compile_command(_compile_job(context, "src/app/x.cpp", Language.CXX))
        assert cmd[0] == "clang++"
        assert "--std=c++98" in cmd
        assert "--std=c99" not in cmd

    def test_quick_profile_replaces_optimisation(self, tmp_path):
        from treebuild.build import BuildProfile

        config = BuildConfig.from_environment(tmp_path, environ={}, profile=BuildProfile.QUICK)
        context = BuildContext.from_config(config, CapabilitySet())
        cmd = GccToolchain(context).compile_command(_compile_job(context))
        assert "-O0" in cmd and "-O3" not in cmd


class TestLinkCommand:
    def test_executable_layout(self, context):
        job = _link_job(context, libraries=("m_lib",))
        root = context.config.project_dir
        cmd = GccToolchain(context).link_command(job, root / "build/.app.tmp")
        assert cmd[:2] == ["clang++", "-Isrc/app"]
        assert "-shared" not in cmd
        assert cmd[cmd.index("-o") + 1] == "build/.app.tmp"
        assert cmd.index("obj/src/app/main.c.o") < cmd.index("obj/src/common/util.c.o")
        assert cmd[-6:] == ["-Llib", "-Lbuild", "-lm_lib", "-Wl,-rpath,$ORIGIN", "-lm", "-lz"]
        assert "--std=c++98" in cmd

    def test_library_is_shared(self, context):
        job = _link_job(context, kind=TargetKind.LIBRARY)
        cmd = GccToolchain(context).link_command(job, job.artifact_path)
        assert "-shared" in cmd
        assert not any(arg.startswith("-Wl,-rpath") for arg in cmd)


class TestCompile:
    def test_success(self, context, monkeypatch):
        fake = FakeRun()
        monkeypatch.setattr(toolchain_module, "safe_run", fake)
        job = _compile_job(context)
        outcome = GccToolchain(context).compile(job)
        assert outcome.object_path == job.object_path
        assert job.object_path.exists()

    def test_failure_removes_outputs(self, context, monkeypatch):
        job = _compile_job(context)
        job.object_path.parent.mkdir(parents=True)
        job.object_path.write_text("stale")
        job.record_path.write_text("stale")
        monkeypatch.setattr(toolchain_module, "safe_run", FakeRun(returncode=1, stderr="main.c:1: error"))

        with pytest.raises(CompileError) as exc_info:
            GccToolchain(context).compile(job)

        assert exc_info.value.stderr.startswith("main.c:1: error")
        assert not job.object_path.exists()
        assert not job.record_path.exists()

    def test_missing_compiler(self, context, monkeypatch):
        def missing(cmd, **kwargs):
            raise FileNotFoundError(2, "No such file", cmd[0])

        monkeypatch.setattr(toolchain_module, "safe_run", missing)
        with pytest.raises(CompileError, match="cannot run clang"):
            GccToolchain(context).compile(_compile_job(context))


class TestLink:
    def test_success_renames_into_place(self, context, monkeypatch):
        monkeypatch.setattr(toolchain_module, "safe_run", FakeRun())
        job = _link_job(context)
        assert GccToolchain(context).link(job) == job.artifact_path
        assert job.artifact_path.read_text() == "binary"
        assert not job.artifact_path.with_name(".app.tmp").exists()

    def test_failure_removes_old_artifact(self, context, monkeypatch):
        job = _link_job(context)
        job.artifact_path.parent.mkdir(parents=True)
        job.artifact_path.write_text("old")
        monkeypatch.setattr(toolchain_module, "safe_run", FakeRun(returncode=1, stderr="undefined reference"))

        with pytest.raises(LinkError) as exc_info:
            GccToolchain(context).link(job)

        assert exc_info.value.target == "app"
        assert not job.artifact_path.exists()
