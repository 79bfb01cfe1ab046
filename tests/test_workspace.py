"""Tests for pipeline/workspace.py - per-request workspaces."""

import threading

import pytest

from pipeline.workspace import WORKSPACE_PREFIX, Workspace, WorkspaceManager


class TestWorkspaceManager:
    """Tests for WorkspaceManager."""

    def test_acquire_creates_directory(self, tmp_path):
        """acquire() creates a fresh directory under root."""
        manager = WorkspaceManager(tmp_path / 'ws')
        workspace = manager.acquire()

        assert workspace.path.is_dir()
        assert workspace.path.parent == tmp_path / 'ws'
        assert workspace.path.name.startswith(WORKSPACE_PREFIX)
        assert list(workspace.path.iterdir()) == []

    def test_repo_dir_inside_workspace(self, tmp_path):
        """The clone target lives inside the workspace."""
        workspace = Workspace(path=tmp_path)
        assert workspace.repo_dir.parent == tmp_path

    def test_release_removes_tree(self, tmp_path):
        """release() removes the workspace and everything in it."""
        manager = WorkspaceManager(tmp_path)
        workspace = manager.acquire()
        (workspace.repo_dir / 'nested').mkdir(parents=True)
        (workspace.repo_dir / 'nested' / 'file.txt').write_text('x')

        manager.release(workspace)

        assert not workspace.path.exists()

    def test_release_twice(self, tmp_path):
        """Releasing an already removed workspace is a no-op."""
        manager = WorkspaceManager(tmp_path)
        workspace = manager.acquire()
        manager.release(workspace)
        manager.release(workspace)
        assert not workspace.path.exists()

    def test_scoped_releases_on_error(self, tmp_path):
        """scoped() removes the workspace when the body raises."""
        manager = WorkspaceManager(tmp_path)
        with pytest.raises(RuntimeError):
            with manager.scoped() as workspace:
                (workspace.path / 'partial').write_text('x')
                raise RuntimeError("boom")
        assert list(tmp_path.iterdir()) == []

    def test_concurrent_workspaces_are_distinct(self, tmp_path):
        """Concurrent acquisitions never share a path."""
        manager = WorkspaceManager(tmp_path)
        paths = []
        lock = threading.Lock()

        def worker():
            workspace = manager.acquire()
            with lock:
                paths.append(workspace.path)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(set(paths)) == 16

    def test_default_root_is_system_temp(self):
        """Without a root, workspaces go to the system temp dir."""
        manager = WorkspaceManager()
        with manager.scoped() as workspace:
            assert workspace.path.is_dir()
        assert not workspace.path.exists()
