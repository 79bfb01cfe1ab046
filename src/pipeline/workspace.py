"""Per-request workspaces.

Each request gets its own freshly created directory. Names come from
tempfile.mkdtemp, which creates the directory atomically, so concurrent
requests never share a path and no locking is needed.
"""

import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "deployweb-"


@dataclass(frozen=True)
class Workspace:
    """An ephemeral directory owned by one request."""
    path: Path

    @property
    def repo_dir(self) -> Path:
        """Where the repository is cloned."""
        return self.path / "repo"


class WorkspaceManager:
    """Creates and removes request workspaces."""

    def __init__(self, root: Optional[Path] = None):
        """Initialize workspace manager.

        Args:
            root: Parent directory for workspaces (system temp dir if None)
        """
        self.root = root

    def acquire(self) -> Workspace:
        """Create a fresh, uniquely named workspace directory."""
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.root))
        logger.debug("Acquired workspace %s", path)
        return Workspace(path=path)

    def release(self, workspace: Workspace) -> None:
        """Recursively remove a workspace. Safe to call twice."""
        if workspace.path.exists():
            shutil.rmtree(workspace.path, ignore_errors=True)
            if workspace.path.exists():
                logger.warning("Workspace %s could not be fully removed", workspace.path)
            else:
                logger.debug("Released workspace %s", workspace.path)

    @contextmanager
    def scoped(self) -> Iterator[Workspace]:
        """Acquire a workspace and release it on every exit path."""
        workspace = self.acquire()
        try:
            yield workspace
        finally:
            self.release(workspace)
