# tests/conftest.py
"""
Common test fixtures for retrace.
"""
import pytest
from pathlib import Path

from retrace.execution import RollbackManager


@pytest.fixture
def state_dir(tmp_path):
    """Base directory for persisted pipeline state."""
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture
def manager(state_dir):
    """A rollback manager over an empty state directory."""
    return RollbackManager(state_dir)


@pytest.fixture
def workspace(tmp_path):
    """An empty pipeline workspace."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_file(workspace):
    """Create a file in the workspace and return its path."""
    def _make(name: str, content: str = "") -> Path:
        path = workspace / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _make
