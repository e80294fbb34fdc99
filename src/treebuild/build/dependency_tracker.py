"""Dependency records: the transitive header set of each compiled object.

Records are the make-style depfiles the compiler writes as a side effect of
``-MMD -MP``::

    obj/src/app/main.c.o: src/app/main.c inc/config.h \\
      src/common/util.h
    inc/config.h:
    src/common/util.h:

The first rule names the object and lists the source followed by every
header it reached. The phony header rules added by ``-MP`` are ignored.

The tracker only supplies data. It never decides that an object is stale;
an absent, unreadable or corrupt record is reported as invalid and the
staleness evaluator treats that as "unknown, assume stale".
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .error_collector import BuildError, ErrorCollector, ErrorSeverity
from .errors import CorruptDependencyRecord

if TYPE_CHECKING:
    from .build_graph import BuildGraph, ObjectFile

logger = logging.getLogger(__name__)

# A rule separator is a colon followed by whitespace or end of line, which
# keeps Windows drive letters (C:\...) inside paths intact.
_RULE_SEPARATOR = re.compile(r":(?=\s|$)")


@dataclass(frozen=True)
class DependencyRecord:
    """Header set recorded for one object at its last successful compile.

    Attributes:
        object_path: Object the record belongs to
        source: Source file the object was compiled from
        headers: Every header transitively included by the source
    """

    object_path: Path
    source: Path
    headers: frozenset[Path]


def _split_words(text: str) -> list[str]:
    """Split a depfile rule side into paths, honouring ``\\ `` and ``$$`` escapes."""
    words = []
    current: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in " #":
            current.append(text[i + 1])
            i += 2
            continue
        if ch == "$" and i + 1 < len(text) and text[i + 1] == "$":
            current.append("$")
            i += 2
            continue
        if ch.isspace():
            if current:
                words.append("".join(current))
                current = []
        else:
            current.append(ch)
        i += 1
    if current:
        words.append("".join(current))
    return words


def parse_depfile(text: str) -> list[tuple[list[str], list[str]]]:
    """Parse make-style depfile text into (targets, prerequisites) rules.

    Args:
        text: Depfile contents

    Returns:
        Rules in file order

    Raises:
        ValueError: If a non-blank line is not a rule
    """
    joined = text.replace("\\\r\n", " ").replace("\\\n", " ")
    rules = []
    for lineno, line in enumerate(joined.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _RULE_SEPARATOR.search(stripped)
        if match is None:
            raise ValueError(f"line {lineno}: expected 'target: prerequisites'")
        targets = _split_words(stripped[: match.start()])
        prerequisites = _split_words(stripped[match.end():])
        if not targets:
            raise ValueError(f"line {lineno}: rule has no target")
        rules.append((targets, prerequisites))
    return rules


class DependencyTracker:
    """Loads and validates the dependency record of each object.

    Relative paths inside records are resolved against the project directory
    (the compiler runs there).
    """

    def __init__(self, project_dir: Path, error_collector: Optional[ErrorCollector] = None):
        self.project_dir = project_dir
        self.error_collector = error_collector
        self._records: dict[Path, Optional[DependencyRecord]] = {}

    def _resolve(self, word: str) -> Path:
        path = Path(word)
        if not path.is_absolute():
            path = self.project_dir / path
        return Path(os.path.normpath(path))

    def load_record(self, obj: "ObjectFile") -> Optional[DependencyRecord]:
        """Read and validate an object's record.

        Args:
            obj: Object whose record to load

        Returns:
            The record, or None if no record file exists

        Raises:
            CorruptDependencyRecord: If the record is unreadable or does not
                describe this object and its source
        """
        record_path = obj.record_path
        if not record_path.exists():
            return None

        try:
            text = record_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptDependencyRecord(record_path, f"unreadable: {e}") from e

        try:
            rules = parse_depfile(text)
        except ValueError as e:
            raise CorruptDependencyRecord(record_path, str(e)) from e

        if not rules:
            raise CorruptDependencyRecord(record_path, "no rules")

        targets, prerequisites = rules[0]
        if not any(self._resolve(t) == obj.path for t in targets):
            raise CorruptDependencyRecord(record_path, f"first rule does not name {obj.path.name}")

        resolved = [self._resolve(p) for p in prerequisites]
        if obj.source.path not in resolved:
            raise CorruptDependencyRecord(record_path, f"source {obj.source.path.name} not listed")

        headers = frozenset(p for p in resolved if p != obj.source.path)
        return DependencyRecord(object_path=obj.path, source=obj.source.path, headers=headers)

    def _load_checked(self, obj: "ObjectFile") -> Optional[DependencyRecord]:
        try:
            return self.load_record(obj)
        except CorruptDependencyRecord as e:
            logger.warning(f"Corrupt dependency record, forcing recompile: {e}")
            if self.error_collector is not None:
                self.error_collector.add_error(
                    BuildError(
                        severity=ErrorSeverity.WARNING,
                        phase="graph",
                        file_path=str(e.record_path),
                        error_message=f"corrupt dependency record ({e.reason}), forcing recompile",
                    )
                )
            return None

    def is_record_valid(self, obj: "ObjectFile") -> bool:
        """Whether the object has a present, readable, well-formed record.

        False means "unknown": callers must assume the object is stale.
        """
        if obj.path not in self._records:
            self._records[obj.path] = self._load_checked(obj)
        return self._records[obj.path] is not None

    def record_for(self, obj: "ObjectFile") -> Optional[DependencyRecord]:
        """The valid record of an object, or None."""
        if self.is_record_valid(obj):
            return self._records[obj.path]
        return None

    def enrich(self, graph: "BuildGraph") -> int:
        """Attach valid records to every object in the graph.

        Returns:
            Number of objects with a valid record
        """
        loaded = 0
        for obj in graph.objects.values():
            obj.record = self.record_for(obj)
            if obj.record is not None:
                loaded += 1
        logger.debug(f"Loaded {loaded}/{len(graph.objects)} dependency records")
        return loaded
