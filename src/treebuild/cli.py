"""
Command-line interface for treebuild.

This module provides the `treebuild` CLI tool for building C/C++ source
trees laid out by directory convention.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from treebuild import __version__
from treebuild.build import BuildConfig, BuildOrchestrator, BuildProfile, BuildResult, ConfigError, ScanError
from treebuild.output import init_timer, log_error, log_header, set_verbose

COMMANDS = ("build", "rebuild", "clean", "inspect")

LOG_FORMAT = "%(levelname)s - %(name)s - [%(funcName)s:%(lineno)d] - %(message)s"


@dataclass
class CommandArgs:
    """Arguments shared by every command."""

    command: str
    project_dir: Path
    jobs: Optional[int] = None
    verbose: bool = False
    profile: BuildProfile = BuildProfile.RELEASE
    probes: list[str] = field(default_factory=list)
    src_dir: Optional[str] = None
    inc_dir: Optional[str] = None
    lib_dir: Optional[str] = None
    obj_dir: Optional[str] = None
    build_dir: Optional[str] = None
    common: Optional[str] = None
    lib_suffix: Optional[str] = None
    no_links: bool = False
    json: bool = False

    def to_config(self) -> BuildConfig:
        """Resolve the BuildConfig from the environment plus these arguments."""
        return BuildConfig.from_environment(
            self.project_dir,
            src_dir=self.src_dir,
            inc_dir=self.inc_dir,
            lib_dir=self.lib_dir,
            obj_dir=self.obj_dir,
            build_dir=self.build_dir,
            common=self.common,
            library_suffix=self.lib_suffix,
            profile=self.profile,
            probes=tuple(self.probes),
            jobs=self.jobs,
            verbose=self.verbose,
            publish_links=not self.no_links,
        )


def setup_logging(verbose: bool) -> None:
    """Route module diagnostics to stderr (debug level when verbose)."""
    logger = logging.getLogger("treebuild")
    logger.setLevel(logging.DEBUG if verbose else logging.ERROR)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
        logger.addHandler(handler)


def render_inspection(result: BuildResult, as_json: bool) -> None:
    """Print the graph and pending actions of an inspect run.

    Raises:
        ValueError: If the result carries no graph or plan
    """
    if result.graph is None or result.plan is None:
        raise ValueError("Inspection needs the graph and plan of an inspect run")
    if as_json:
        print(json.dumps({"graph": result.graph.to_dict(), "plan": result.plan.to_dict()}, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    console = Console()
    pending = {a.target for a in result.plan.link_actions}

    targets = Table(title="Targets", show_lines=False)
    targets.add_column("Target", style="bold", no_wrap=True)
    targets.add_column("Kind")
    targets.add_column("Objects", justify="right")
    targets.add_column("Artifact")
    targets.add_column("Status")
    for target in result.graph.targets:
        status = "[yellow]stale[/yellow]" if target.name in pending else "[green]up to date[/green]"
        artifact = target.artifact_path.relative_to(result.graph.config.project_dir)
        targets.add_row(target.name, target.kind.value, str(len(target.all_objects)), str(artifact), status)
    for skipped in result.graph.skipped:
        targets.add_row(skipped.name, "-", "0", "-", f"[dim]skipped: {skipped.reason}[/dim]")
    console.print(targets)

    if result.plan.actions:
        actions = Table(title="Pending actions")
        actions.add_column("Action", no_wrap=True)
        actions.add_column("Reasons")
        for action in result.plan.actions:
            actions.add_row(action.name, "; ".join(action.reasons))
        console.print(actions)

    console.print(result.message, style="dim")


def run_command(args: CommandArgs) -> int:
    """Run one command and return the process exit code.

    Returns:
        0 on success, 1 if any target failed, 2 for configuration or scan errors,
        130 when interrupted
    """
    # inspect keeps stdout for its report
    init_timer(sys.stderr if args.command == "inspect" else sys.stdout)
    set_verbose(args.verbose)
    setup_logging(args.verbose)
    if args.command != "inspect":
        log_header("treebuild", __version__)

    try:
        orchestrator = BuildOrchestrator(args.to_config())

        if args.command == "clean":
            result = orchestrator.clean()
        elif args.command == "rebuild":
            result = orchestrator.rebuild()
        elif args.command == "inspect":
            result = orchestrator.inspect()
            render_inspection(result, args.json)
        else:
            result = orchestrator.build()

        if not result.success and result.errors is not None and args.verbose:
            print(result.errors.format_errors(max_errors=20))
        return 0 if result.success else 1

    except (ConfigError, ScanError) as e:
        log_error(str(e))
        return 2

    except KeyboardInterrupt:
        print()
        log_error("Build interrupted")
        return 130  # Standard exit code for SIGINT


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "project_dir",
        nargs="?",
        type=Path,
        default=Path.cwd(),
        help="Project directory (default: current directory)",
    )
    common.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of parallel actions (default: CPU count)",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every compile and link",
    )
    common.add_argument(
        "--profile",
        choices=[p.value for p in BuildProfile],
        default=BuildProfile.RELEASE.value,
        help="Build profile (default: release)",
    )
    common.add_argument(
        "--with",
        dest="probes",
        action="append",
        default=[],
        metavar="NAME",
        help="Probe an optional dependency with pkg-config (repeatable)",
    )
    for option, dest, default in (
        ("--src-dir", "src_dir", "src"),
        ("--inc-dir", "inc_dir", "inc"),
        ("--lib-dir", "lib_dir", "lib"),
        ("--obj-dir", "obj_dir", "obj"),
        ("--build-dir", "build_dir", "build"),
        ("--common", "common", "common"),
        ("--lib-suffix", "lib_suffix", "_lib"),
    ):
        common.add_argument(option, dest=dest, default=None, help=f"(default: {default})")
    common.add_argument(
        "--no-links",
        action="store_true",
        help="Do not create convenience links at the project root",
    )

    parser = argparse.ArgumentParser(
        prog="treebuild",
        description="treebuild - incremental builds for convention-laid-out C/C++ trees",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"treebuild {__version__}",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run (default: build)")
    subparsers.add_parser("build", parents=[common], help="Build every stale target")
    subparsers.add_parser("rebuild", parents=[common], help="Clean, then build everything")
    subparsers.add_parser("clean", parents=[common], help="Remove objects, artifacts and links")
    inspect_parser = subparsers.add_parser("inspect", parents=[common], help="Show targets and pending actions")
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the graph and plan as JSON",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """treebuild - incremental builds for convention-laid-out C/C++ trees."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    if not args_list or (args_list[0] not in COMMANDS and args_list[0] not in ("-h", "--help", "--version")):
        args_list.insert(0, "build")

    parser = build_parser()
    parsed_args = parser.parse_args(args_list)

    if parsed_args.jobs is not None and parsed_args.jobs < 1:
        parser.error("--jobs must be at least 1")

    if not parsed_args.project_dir.is_dir():
        log_error(f"Path is not a directory: {parsed_args.project_dir}")
        sys.exit(2)

    args = CommandArgs(
        command=parsed_args.command,
        project_dir=parsed_args.project_dir,
        jobs=parsed_args.jobs,
        verbose=parsed_args.verbose,
        profile=BuildProfile(parsed_args.profile),
        probes=parsed_args.probes,
        src_dir=parsed_args.src_dir,
        inc_dir=parsed_args.inc_dir,
        lib_dir=parsed_args.lib_dir,
        obj_dir=parsed_args.obj_dir,
        build_dir=parsed_args.build_dir,
        common=parsed_args.common,
        lib_suffix=parsed_args.lib_suffix,
        no_links=parsed_args.no_links,
        json=getattr(parsed_args, "json", False),
    )
    sys.exit(run_command(args))


if __name__ == "__main__":
    main()
