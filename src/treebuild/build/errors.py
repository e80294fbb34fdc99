"""Exception hierarchy for the treebuild engine.

Only ConfigError and ScanError are fatal. The others are recorded per object or per target
(or downgraded to warnings) and summarised at the end of the run.
"""

from pathlib import Path
from typing import Optional


class TreebuildError(Exception):
    """Base class for all treebuild errors."""

    pass


class ScanError(TreebuildError):
    """Raised when the source tree cannot be read. Aborts the build."""

    pass


class ConfigError(TreebuildError):
    """Raised when the project configuration is unusable. Aborts the build."""

    pass


class CompileError(TreebuildError):
    """Raised when a single source file fails to compile."""

    def __init__(self, source: Path, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.stderr = stderr


class LinkError(TreebuildError):
    """Raised when a target fails to link."""

    def __init__(self, target: str, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.target = target
        self.stderr = stderr


class ProbeUnavailable(TreebuildError):
    """Raised by a capability probe when an optional dependency is absent."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"{tool_name}: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class CorruptDependencyRecord(TreebuildError):
    """Raised when a dependency record exists but cannot be trusted."""

    def __init__(self, record_path: Path, reason: str):
        super().__init__(f"{record_path}: {reason}")
        self.record_path = record_path
        self.reason = reason


class CyclicDependencyError(TreebuildError, ValueError):
    """Raised when the action graph contains a cycle."""

    pass
