"""Build graph: Source, Object and Target nodes with explicit edges.

The graph is rebuilt in memory from a fresh scan on every invocation:

    SourceFile --1:1--> ObjectFile --n:1--> Target (own-directory objects)
                        CommonPool  --1:n--> Target (by reference, every target)

Only two things persist between runs: the object/artifact timestamps on
disk, and each object's dependency record. Separating "what the graph is"
from "how freshness is decided" lets the staleness evaluator be tested
against synthetic graphs.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .build_context import OBJECT_SUFFIX, RECORD_SUFFIX, BuildConfig
from .source_scanner import ProjectScan, SourceFile, TargetKind

logger = logging.getLogger(__name__)


def object_path_for(source_path: Path, config: BuildConfig) -> Path:
    """Map a source path to its object path.

    The source path (relative to the project) is mirrored under the object
    cache root and ``.o`` is appended, keeping the source extension:
    ``src/app/main.c`` -> ``obj/src/app/main.c.o``. The mapping is a pure
    function of the path, collision-free across languages, and reversible.

    Raises:
        ValueError: If the source lies outside the project directory
    """
    rel = source_path.relative_to(config.project_dir)
    return config.object_root / rel.parent / (rel.name + OBJECT_SUFFIX)


def record_path_for(object_path: Path) -> Path:
    """Dependency record path of an object: ``main.c.o`` -> ``main.c.d``."""
    name = object_path.name
    if name.endswith(OBJECT_SUFFIX):
        name = name[: -len(OBJECT_SUFFIX)]
    return object_path.with_name(name + RECORD_SUFFIX)


def source_path_for(object_path: Path, config: BuildConfig) -> Path:
    """Reverse of object_path_for.

    Raises:
        ValueError: If the path is not an object path under the cache root
    """
    rel = object_path.relative_to(config.object_root)
    if not rel.name.endswith(OBJECT_SUFFIX):
        raise ValueError(f"Not an object path: {object_path}")
    return config.project_dir / rel.parent / rel.name[: -len(OBJECT_SUFFIX)]


def file_mtime(path: Path) -> Optional[float]:
    """Modification time of a file, or None if it cannot be stat()ed."""
    try:
        return path.stat().st_mtime
    except OSError:
        return None


@dataclass(eq=False)
class ObjectFile:
    """Object node derived from exactly one SourceFile.

    Attributes:
        source: The source this object is compiled from
        path: Object file path in the cache
        record_path: Dependency record path next to the object
        record: Dependency record, set by the DependencyTracker when valid
    """

    source: SourceFile
    path: Path
    record_path: Path
    record: Optional[Any] = None

    @property
    def mtime(self) -> Optional[float]:
        """Current modification time, or None if the object does not exist."""
        return file_mtime(self.path)

    @property
    def exists(self) -> bool:
        return self.path.exists()


@dataclass(eq=False)
class CommonPool:
    """Objects compiled from the common directory, shared by every target."""

    directory: Optional[Path]
    objects: list[ObjectFile] = field(default_factory=list)


@dataclass(eq=False)
class Target:
    """An Executable or Library named after its source subdirectory.

    Attributes:
        name: Directory name
        kind: EXECUTABLE or LIBRARY
        directory: Source subdirectory
        objects: Objects compiled from this directory (owned)
        pool: The project's CommonPool (referenced, not owned)
        artifact_path: Linked output in the artifact root
    """

    name: str
    kind: TargetKind
    directory: Path
    objects: list[ObjectFile]
    pool: CommonPool
    artifact_path: Path

    @property
    def all_objects(self) -> list[ObjectFile]:
        """Objects linked into this target: common pool first, then own objects."""
        return list(self.pool.objects) + list(self.objects)

    @property
    def is_library(self) -> bool:
        return self.kind == TargetKind.LIBRARY

    @property
    def link_name(self) -> str:
        """Name given to the convenience link at the project root."""
        return self.artifact_path.name

    @property
    def library_stem(self) -> str:
        """Name used with ``-l`` when executables link against this library."""
        return self.name

    @property
    def artifact_mtime(self) -> Optional[float]:
        return file_mtime(self.artifact_path)


def artifact_path_for(name: str, kind: TargetKind, config: BuildConfig) -> Path:
    """Artifact path of a target: ``build/<name>`` or ``build/lib<name>.so``."""
    if kind == TargetKind.LIBRARY:
        return config.artifact_root / f"lib{name}.so"
    return config.artifact_root / name


@dataclass
class SkippedTarget:
    """A target directory that was not turned into a Target."""

    name: str
    reason: str


@dataclass
class BuildGraph:
    """The explicit build graph for one invocation."""

    config: BuildConfig
    pool: CommonPool
    targets: list[Target] = field(default_factory=list)
    objects: dict[Path, ObjectFile] = field(default_factory=dict)
    skipped: list[SkippedTarget] = field(default_factory=list)
    loose_sources: list[SourceFile] = field(default_factory=list)
    include_paths: list[Path] = field(default_factory=list)
    library_paths: list[Path] = field(default_factory=list)

    def target(self, name: str) -> Target:
        """Get a target by name.

        Raises:
            KeyError: If no such target exists
        """
        for target in self.targets:
            if target.name == name:
                return target
        raise KeyError(f"Unknown target: {name}")

    @property
    def executables(self) -> list[Target]:
        return [t for t in self.targets if not t.is_library]

    @property
    def libraries(self) -> list[Target]:
        return [t for t in self.targets if t.is_library]

    def _rel(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.config.project_dir)
        except ValueError:
            return str(path)

    def edges(self) -> list[tuple[str, str]]:
        """All graph edges as (from, to) pairs: source to object, object to target name."""
        result = []
        for obj in self.objects.values():
            result.append((self._rel(obj.source.path), self._rel(obj.path)))
        for target in self.targets:
            for obj in target.all_objects:
                result.append((self._rel(obj.path), target.name))
        return result

    def to_dict(self) -> dict[str, Any]:
        """Serialize the graph (paths relative to the project) for inspection."""
        rel = self._rel

        def obj_dict(obj: ObjectFile) -> dict[str, Any]:
            return {
                "source": rel(obj.source.path),
                "language": obj.source.language.value,
                "object": rel(obj.path),
                "record": rel(obj.record_path),
                "headers": sorted(rel(h) for h in obj.record.headers) if obj.record is not None else None,
            }

        return {
            "project_dir": str(self.config.project_dir),
            "common_pool": {
                "directory": rel(self.pool.directory) if self.pool.directory else None,
                "objects": [obj_dict(o) for o in self.pool.objects],
            },
            "targets": [
                {
                    "name": t.name,
                    "kind": t.kind.value,
                    "directory": rel(t.directory),
                    "artifact": rel(t.artifact_path),
                    "objects": [obj_dict(o) for o in t.objects],
                }
                for t in self.targets
            ],
            "skipped": [{"name": s.name, "reason": s.reason} for s in self.skipped],
            "loose_sources": [rel(s.path) for s in self.loose_sources],
            "include_paths": [rel(p) for p in self.include_paths],
            "library_paths": [rel(p) for p in self.library_paths],
            "edges": [list(edge) for edge in self.edges()],
        }


class BuildGraphBuilder:
    """Turns a ProjectScan into a BuildGraph."""

    def __init__(self, config: BuildConfig):
        self.config = config

    def build(self, scan: ProjectScan) -> BuildGraph:
        """Construct Object and Target nodes and wire them together.

        Target directories without any compilable source are skipped (recorded
        in ``graph.skipped``) rather than aborting the build. The CommonPool is
        created once and shared by reference with every target.

        Args:
            scan: Output of ProjectScanner.scan()

        Returns:
            The BuildGraph
        """
        pool = CommonPool(directory=scan.common_dir)
        graph = BuildGraph(
            config=self.config,
            pool=pool,
            include_paths=list(scan.include_paths),
            library_paths=list(scan.library_paths),
            loose_sources=list(scan.loose_sources),
        )

        pool.objects = [self._object_for(graph, s) for s in scan.sources_for(self.config.common)]

        for target_dir in scan.target_dirs:
            sources = scan.sources_for(target_dir.name)
            if not sources:
                reason = f"no compilable sources in {target_dir.path}"
                logger.warning(f"Skipping target {target_dir.name}: {reason}")
                graph.skipped.append(SkippedTarget(name=target_dir.name, reason=reason))
                continue

            graph.targets.append(
                Target(
                    name=target_dir.name,
                    kind=target_dir.kind,
                    directory=target_dir.path,
                    objects=[self._object_for(graph, s) for s in sources],
                    pool=pool,
                    artifact_path=artifact_path_for(target_dir.name, target_dir.kind, self.config),
                )
            )

        if graph.loose_sources:
            logger.warning(
                f"{len(graph.loose_sources)} source(s) directly in {scan.sources_root} belong to no target and are ignored"
            )

        logger.debug(f"Build graph: {len(graph.objects)} objects, {len(graph.targets)} targets, {len(pool.objects)} pooled")
        return graph

    def _object_for(self, graph: BuildGraph, source: SourceFile) -> ObjectFile:
        path = object_path_for(source.path, self.config)
        existing = graph.objects.get(path)
        if existing is not None:
            return existing
        obj = ObjectFile(source=source, path=path, record_path=record_path_for(path))
        graph.objects[path] = obj
        return obj
