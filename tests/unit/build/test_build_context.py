"""Unit tests for BuildConfig, BuildContext and build profiles."""

import dataclasses

import pytest

from treebuild.build import BuildConfig, BuildContext, BuildProfile, CapabilitySet, ConfigError
from treebuild.build.build_profiles import (
    filter_controlled_flags,
    format_profile_banner,
    get_profile,
    merge_compile_flags,
    merge_link_flags,
)


class TestBuildConfigDefaults:
    def test_defaults_follow_convention(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={})
        assert config.sources_root == tmp_path.resolve() / "src"
        assert config.common_root == tmp_path.resolve() / "src" / "common"
        assert config.object_root.name == "obj"
        assert config.artifact_root.name == "build"
        assert (config.cc, config.cxx) == ("gcc", "g++")
        assert config.cflags == ("--std=c99",)
        assert config.cxxflags == ("--std=c++98",)
        assert config.flags == ("-fPIC", "-g3")
        assert config.profile == BuildProfile.RELEASE

    def test_is_frozen(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={})
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.cc = "clang"  # type: ignore[misc]

    def test_library_suffix(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={})
        assert config.is_library_dir("math_lib")
        assert not config.is_library_dir("_lib")
        assert not config.is_library_dir("library")


class TestBuildConfigEnvironment:
    def test_environment_overrides(self, tmp_path):
        env = {"CC": "clang", "CXX": "clang++", "CFLAGS": "-std=c11 -Wall", "LDFLAGS": "-lm", "FLAGS": "-g"}
        config = BuildConfig.from_environment(tmp_path, environ=env)
        assert config.cc == "clang"
        assert config.cxx == "clang++"
        assert config.cflags == ("-std=c11", "-Wall")
        assert config.ldflags == ("-lm",)
        assert config.flags == ("-g",)

    def test_empty_compiler_ignored(self, tmp_path):
        assert BuildConfig.from_environment(tmp_path, environ={"CC": ""}).cc == "gcc"

    def test_empty_flags_are_an_override(self, tmp_path):
        assert BuildConfig.from_environment(tmp_path, environ={"CFLAGS": ""}).cflags == ()

    def test_quoted_flags(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={"FLAGS": "-DNAME='a b'"})
        assert config.flags == ("-DNAME=a b",)

    def test_keyword_overrides_win(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={"CC": "clang"}, cc="tcc", src_dir=None)
        assert config.cc == "tcc"
        assert config.src_dir == "src"


class TestBuildConfigRoots:
    def test_absolute_source_root_outside_project(self, tmp_path):
        (tmp_path / "elsewhere").mkdir()
        with pytest.raises(ConfigError, match="src_dir"):
            BuildConfig.from_environment(tmp_path / "proj", environ={}, src_dir=str(tmp_path / "elsewhere"))

    def test_parent_relative_roots_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="obj_dir"):
            BuildConfig.from_environment(tmp_path, environ={}, obj_dir="../obj")

    def test_project_root_itself_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="build_dir"):
            BuildConfig.from_environment(tmp_path, environ={}, build_dir=".")

    def test_nested_roots_accepted(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={}, src_dir="code/c", build_dir=str(tmp_path / "out"))
        assert config.sources_root == tmp_path.resolve() / "code" / "c"


class TestProfiles:
    def test_release_is_o3(self):
        assert get_profile(BuildProfile.RELEASE).compile_flags == ("-O3",)

    def test_profile_strips_user_optimisation(self):
        profile = get_profile(BuildProfile.QUICK)
        assert filter_controlled_flags(["-O2", "-g", "-Os"], profile) == ["-g"]
        assert merge_compile_flags(["-O2", "-g"], profile) == ["-g", "-O0"]
        assert merge_link_flags(["-O2", "-g"], profile) == ["-g"]

    def test_config_flags_include_profile(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={"FLAGS": "-O1 -g3"})
        assert config.compile_flags == ["-g3", "-O3"]
        assert config.link_flags == ["-g3", "-O3"]

    def test_banner(self):
        assert format_profile_banner(BuildProfile.QUICK, "gcc") == "PROFILE=quick CC=gcc"
        assert format_profile_banner(BuildProfile.RELEASE) == "PROFILE=release"


class TestBuildContext:
    def test_flags_come_from_config_with_profile(self, tmp_path):
        config = BuildConfig.from_environment(tmp_path, environ={"FLAGS": "-O1 -Wall"}, profile=BuildProfile.QUICK)
        context = BuildContext.from_config(config, CapabilitySet(cflags=("-DHAVE_Z=1",)))
        assert context.compile_flags == ("-Wall", "-O0")
        assert context.link_flags == ("-Wall",)
        assert "-DHAVE_Z=1" not in context.compile_flags
