"""Artifact publisher: convenience links at the project root and cleaning."""

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


class ArtifactPublisher:
    """Creates ``./<name> -> build/<name>`` links and removes build outputs."""

    def __init__(self, project_dir: Path):
        self.project_dir = project_dir

    def publish_link(self, artifact: Path, link_name: str) -> Path:
        """Point ``<project>/<link_name>`` at an artifact.

        A link already pointing at the artifact is left alone and any other
        symlink is replaced. A regular file or directory with the
        same name is never touched.

        Args:
            artifact: Linked artifact
            link_name: Name of the link in the project directory

        Returns:
            Path of the link

        Raises:
            FileExistsError: If a non-link file occupies the link path
            OSError: If the platform refuses to create the link
        """
        link = self.project_dir / link_name
        relative = os.path.relpath(artifact, self.project_dir)
        if link.is_symlink():
            if os.readlink(link) == relative:
                return link
            link.unlink()
        elif link.exists():
            raise FileExistsError(f"Refusing to replace {link}: not a symlink")

        link.symlink_to(relative)
        logger.debug(f"Published {link} -> {artifact}")
        return link

    def clean(self, cache_root: Path, artifact_root: Path, link_names: Iterable[str] = ()) -> list[Path]:
        """Remove the object cache, the artifact root and published links.

        Only symlinks pointing into the artifact root are removed from the
        project root.

        Returns:
            Paths that were removed
        """
        removed = []
        for root in (cache_root, artifact_root):
            if root.is_dir():
                shutil.rmtree(root)
                removed.append(root)
                logger.debug(f"Removed {root}")

        for name in link_names:
            link = self.project_dir / name
            if link.is_symlink() and self._points_into(link, artifact_root):
                link.unlink()
                removed.append(link)
                logger.debug(f"Removed link {link}")
        return removed

    def _points_into(self, link: Path, root: Path) -> bool:
        target = Path(os.path.normpath(link.parent / os.readlink(link)))
        return target.parent == Path(os.path.normpath(root))
