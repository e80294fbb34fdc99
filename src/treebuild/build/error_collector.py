"""Error Collector - Structured collection of non-fatal build problems.

Compile and link failures, skipped targets, unavailable capabilities and
corrupt dependency records do not abort a build. They are collected here
while the build continues and reported together in the final summary.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ErrorSeverity(Enum):
    """Severity level of a build problem."""

    WARNING = "warning"
    ERROR = "error"


@dataclass
class BuildError:
    """Single build problem.

    Attributes:
        severity: WARNING or ERROR
        phase: "scan", "probe", "graph", "compile", "link" or "publish"
        file_path: Source, record or artifact concerned (if any)
        error_message: One-line description
        target: Target concerned (if any)
        stderr: Tool output captured for the failure
    """

    severity: ErrorSeverity
    phase: str
    file_path: Optional[str]
    error_message: str
    target: Optional[str] = None
    stderr: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        """Format the problem as human-readable text."""
        lines = [f"[{self.severity.value.upper()}] {self.phase}: {self.error_message}"]

        if self.target:
            lines.append(f"  Target: {self.target}")
        if self.file_path:
            lines.append(f"  File: {self.file_path}")

        if self.stderr:
            stderr_preview = self.stderr.strip()[:500]
            if len(self.stderr.strip()) > 500:
                stderr_preview += "... (truncated)"
            lines.append(f"  stderr: {stderr_preview}")

        return "\n".join(lines)


class ErrorCollector:
    """Collects problems reported during one build. Thread-safe."""

    def __init__(self, max_errors: int = 200):
        self.errors: list[BuildError] = []
        self.lock = threading.Lock()
        self.max_errors = max_errors

    def add_error(self, error: BuildError) -> None:
        """Add a problem, dropping the oldest once max_errors is reached."""
        with self.lock:
            if len(self.errors) >= self.max_errors:
                logging.warning(f"ErrorCollector full ({self.max_errors} errors), dropping oldest")
                self.errors.pop(0)
            self.errors.append(error)

        logging.debug(f"Added {error.severity.value} in phase {error.phase}: {error.error_message}")

    def warn(self, phase: str, message: str, file_path: Optional[str] = None, target: Optional[str] = None) -> None:
        """Shorthand for adding a WARNING."""
        self.add_error(
            BuildError(
                severity=ErrorSeverity.WARNING,
                phase=phase,
                file_path=file_path,
                error_message=message,
                target=target,
            )
        )

    def get_errors(self, severity: Optional[ErrorSeverity] = None) -> list[BuildError]:
        """All problems, optionally filtered by severity."""
        with self.lock:
            if severity:
                return [e for e in self.errors if e.severity == severity]
            return self.errors.copy()

    def get_errors_by_phase(self, phase: str) -> list[BuildError]:
        with self.lock:
            return [e for e in self.errors if e.phase == phase]

    def has_errors(self) -> bool:
        """Whether any ERROR problem was collected."""
        with self.lock:
            return any(e.severity == ErrorSeverity.ERROR for e in self.errors)

    def has_warnings(self) -> bool:
        with self.lock:
            return any(e.severity == ErrorSeverity.WARNING for e in self.errors)

    def get_error_count(self) -> dict[str, int]:
        """Count of problems by severity."""
        with self.lock:
            return {
                "warnings": sum(1 for e in self.errors if e.severity == ErrorSeverity.WARNING),
                "errors": sum(1 for e in self.errors if e.severity == ErrorSeverity.ERROR),
                "total": len(self.errors),
            }

    def format_errors(self, max_errors: Optional[int] = None) -> str:
        """Format every problem followed by a count summary."""
        errors = self.get_errors()
        if not errors:
            return "No errors"

        shown = errors if max_errors is None else errors[:max_errors]
        lines = [err.format() for err in shown]

        if max_errors and len(errors) > max_errors:
            lines.append(f"... and {len(errors) - max_errors} more")

        lines.append(f"Summary: {self.format_summary()}")
        return "\n\n".join(lines)

    def format_summary(self) -> str:
        """Brief summary such as ``2 errors, 1 warnings``."""
        counts = self.get_error_count()
        if counts["total"] == 0:
            return "No errors"

        parts = []
        if counts["errors"] > 0:
            parts.append(f"{counts['errors']} errors")
        if counts["warnings"] > 0:
            parts.append(f"{counts['warnings']} warnings")
        return ", ".join(parts)

    def get_compilation_errors(self) -> list[BuildError]:
        return [e for e in self.get_errors_by_phase("compile") if e.severity != ErrorSeverity.WARNING]

    def get_link_errors(self) -> list[BuildError]:
        return [e for e in self.get_errors_by_phase("link") if e.severity != ErrorSeverity.WARNING]
