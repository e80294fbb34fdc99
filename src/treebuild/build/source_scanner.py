"""Project scanner.

Walks the source tree and classifies what it finds according to the
directory convention:

    project/
      src/
        common/        -> CommonPool sources (linked into every target)
        <name>/        -> Executable target <name>
        <name>_lib/    -> Library target <name>_lib
      inc/, inc/*/     -> include search paths
      lib/, lib/*/     -> library search paths

The scanner only reads the filesystem. Nothing it returns is persisted; the
project model is rebuilt from a fresh scan on every invocation.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .build_context import C_EXTENSIONS, CXX_EXTENSIONS, BuildConfig
from .errors import ScanError

logger = logging.getLogger(__name__)


class Language(Enum):
    """Source language, determined by file extension."""

    C = "c"
    CXX = "c++"

    @classmethod
    def from_path(cls, path: Path) -> Optional["Language"]:
        suffix = path.suffix
        if suffix in C_EXTENSIONS:
            return cls.C
        if suffix in CXX_EXTENSIONS:
            return cls.CXX
        return None


class TargetKind(Enum):
    """Kind of artifact a target directory produces."""

    EXECUTABLE = "executable"
    LIBRARY = "library"


@dataclass(frozen=True)
class SourceFile:
    """A compilable source file.

    Attributes:
        path: Absolute path of the source
        language: Language derived from the extension
        owner: Name of the depth-1 source subdirectory holding the file
            ("" for files sitting directly in the sources root)
    """

    path: Path
    language: Language
    owner: str

    @property
    def directory(self) -> Path:
        return self.path.parent


@dataclass(frozen=True)
class TargetDir:
    """A depth-1 source subdirectory that is a target candidate."""

    name: str
    path: Path
    kind: TargetKind


@dataclass
class ProjectScan:
    """Everything the scanner found in one project.

    Attributes:
        sources_root: Scanned sources root
        sources: Every compilable source, sorted by path
        target_dirs: Target candidates (common dir excluded), sorted by name
        common_dir: The common directory if it exists
        include_paths: Include root and its depth-1 subdirectories
        library_paths: Library root and its depth-1 subdirectories
    """

    sources_root: Path
    sources: list[SourceFile] = field(default_factory=list)
    target_dirs: list[TargetDir] = field(default_factory=list)
    common_dir: Optional[Path] = None
    include_paths: list[Path] = field(default_factory=list)
    library_paths: list[Path] = field(default_factory=list)

    def sources_for(self, owner: str) -> list[SourceFile]:
        """Sources belonging to one depth-1 directory."""
        return [s for s in self.sources if s.owner == owner]

    @property
    def loose_sources(self) -> list[SourceFile]:
        """Sources directly in the sources root; they belong to no target."""
        return self.sources_for("")

    @property
    def executables(self) -> list[TargetDir]:
        return [t for t in self.target_dirs if t.kind == TargetKind.EXECUTABLE]

    @property
    def libraries(self) -> list[TargetDir]:
        return [t for t in self.target_dirs if t.kind == TargetKind.LIBRARY]


class ProjectScanner:
    """Scans a project tree into a ProjectScan."""

    def __init__(self, config: BuildConfig):
        self.config = config

    def scan(self) -> ProjectScan:
        """Scan the project.

        Returns:
            ProjectScan describing sources, targets and search paths

        Raises:
            ScanError: If the sources root is missing or unreadable
        """
        root = self.config.sources_root
        if not root.is_dir():
            raise ScanError(f"Sources root not found: {root}")

        result = ProjectScan(sources_root=root)
        result.sources = self._scan_sources(root)
        result.target_dirs = self._scan_target_dirs(root)

        common_dir = self.config.common_root
        if common_dir.is_dir():
            result.common_dir = common_dir

        result.include_paths = self._scan_search_root(self.config.include_root)
        result.library_paths = self._scan_search_root(self.config.library_root)

        logger.debug(
            f"Scanned {root}: {len(result.sources)} sources, "
            f"{len(result.target_dirs)} target dirs, common={'yes' if result.common_dir else 'no'}"
        )
        return result

    def _scan_sources(self, root: Path) -> list[SourceFile]:
        def on_error(error: OSError) -> None:
            raise ScanError(f"Cannot read source tree at {error.filename}: {error.strerror}")

        sources = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            current = Path(dirpath)
            for filename in sorted(filenames):
                path = current / filename
                language = Language.from_path(path)
                if language is None:
                    continue
                sources.append(SourceFile(path=path, language=language, owner=self._owner_of(root, path)))

        sources.sort(key=lambda s: s.path)
        return sources

    @staticmethod
    def _owner_of(root: Path, path: Path) -> str:
        parts = path.relative_to(root).parts
        return parts[0] if len(parts) > 1 else ""

    def _scan_target_dirs(self, root: Path) -> list[TargetDir]:
        try:
            entries = sorted(p for p in root.iterdir() if p.is_dir())
        except OSError as e:
            raise ScanError(f"Cannot list sources root {root}: {e}") from e

        targets = []
        for entry in entries:
            if entry.name == self.config.common:
                continue
            kind = TargetKind.LIBRARY if self.config.is_library_dir(entry.name) else TargetKind.EXECUTABLE
            targets.append(TargetDir(name=entry.name, path=entry, kind=kind))
        return targets

    @staticmethod
    def _scan_search_root(root: Path) -> list[Path]:
        """The root itself plus its immediate subdirectories; a missing or empty root yields nothing."""
        if not root.is_dir():
            return []
        try:
            entries = list(root.iterdir())
        except OSError as e:
            logger.warning(f"Cannot list search root {root}: {e}")
            return []
        if not entries:
            return []
        return [root] + sorted(p for p in entries if p.is_dir())
