"""Unit tests for logging compliance across the codebase.

These tests enforce that library code reports through the output module or
the logging module, never through bare print() calls.
"""

import re
from pathlib import Path

import pytest

SRC_DIR = Path(__file__).parent.parent.parent / "src" / "treebuild"


def _source_files() -> list[Path]:
    files = [p for p in SRC_DIR.rglob("*.py") if "__pycache__" not in p.parts]
    assert files, f"No Python files found in {SRC_DIR}"
    return files


class TestLoggingCompliance:
    """Test cases for logging vs print statement compliance."""

    def test_no_print_statements_in_library_code(self):
        """CLI print() calls are user-facing output; everything else goes through output.py."""
        violations = []
        for file_path in _source_files():
            if file_path.name == "cli.py":
                continue
            for line_num, line in enumerate(file_path.read_text(encoding="utf-8").split("\n"), start=1):
                if line.strip().startswith("#"):
                    continue
                if re.search(r"(?<![\w.])print\s*\(", line):
                    violations.append(f"{file_path.name}:{line_num}: {line.strip()}")

        if violations:
            pytest.fail("Found print() statements in library code:\n" + "\n".join(violations))

    def test_module_loggers_are_named(self):
        """Modules calling logger.* must define logger = logging.getLogger(__name__)."""
        missing = []
        for file_path in _source_files():
            if file_path.name == "cli.py":
                continue
            content = file_path.read_text(encoding="utf-8")
            if re.search(r"\blogger\.(debug|info|warning|error|exception)\(", content):
                if "logger = logging.getLogger(__name__)" not in content:
                    missing.append(file_path.name)

        assert missing == []
