"""Staleness evaluation: decides which objects recompile and which targets relink.

All timestamp comparisons are strict: an output is stale only when it is
strictly older than an input. Equal timestamps count as up to date, so a
build immediately followed by another build does nothing. A missing output
is always stale, and so is an object whose dependency record cannot be
trusted.
"""

import logging
from pathlib import Path
from typing import Collection

from .build_graph import ObjectFile, Target, file_mtime
from .dependency_tracker import DependencyTracker

logger = logging.getLogger(__name__)


class StalenessEvaluator:
    """Answers "does this object recompile" and "does this target relink".

    The ``explain_*`` methods return human-readable reasons (empty when up to
    date); ``needs_*`` are their boolean forms.
    """

    def __init__(self, tracker: DependencyTracker):
        self.tracker = tracker

    def explain_compile(self, obj: ObjectFile) -> list[str]:
        """Reasons why an object must be recompiled from its source."""
        obj_mtime = obj.mtime
        if obj_mtime is None:
            return ["object missing"]

        reasons = []
        src_mtime = file_mtime(obj.source.path)
        if src_mtime is None or obj_mtime < src_mtime:
            reasons.append(f"source {obj.source.path.name} changed")

        record = self.tracker.record_for(obj)
        if record is None:
            reasons.append("dependency record missing or invalid")
            return reasons

        for header in sorted(record.headers):
            header_mtime = file_mtime(header)
            if header_mtime is None:
                reasons.append(f"header {header.name} no longer exists")
            elif obj_mtime < header_mtime:
                reasons.append(f"header {header.name} changed")
        return reasons

    def needs_compile(self, obj: ObjectFile) -> bool:
        return bool(self.explain_compile(obj))

    def explain_link(self, target: Target, recompiled: Collection[Path] = ()) -> list[str]:
        """Reasons why a target must be relinked.

        Args:
            target: Target to check
            recompiled: Paths of objects that are (or will be) recompiled in
                this run; any of them feeding the target forces a relink

        Returns:
            Reasons, empty if the artifact is up to date
        """
        artifact_mtime = target.artifact_mtime
        if artifact_mtime is None:
            return ["artifact missing"]

        reasons = []
        for obj in target.all_objects:
            if obj.path in recompiled:
                reasons.append(f"{obj.path.name} recompiled")
                continue
            obj_mtime = obj.mtime
            if obj_mtime is None:
                reasons.append(f"{obj.path.name} missing")
            elif artifact_mtime < obj_mtime:
                reasons.append(f"{obj.path.name} newer than artifact")
        return reasons

    def needs_link(self, target: Target, recompiled: Collection[Path] = ()) -> bool:
        return bool(self.explain_link(target, recompiled))
