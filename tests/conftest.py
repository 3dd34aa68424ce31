"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path (development checkout)
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_CHILD_PATH = FIXTURES_DIR / "fake_child.py"


def _child_arguments(*args: str) -> str:
    """Build the raw argument string that runs fake_child.py with args."""
    return " ".join([f'"{FAKE_CHILD_PATH}"', *args])


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def python_exe() -> str:
    """Interpreter used to run the fake child."""
    return sys.executable


@pytest.fixture
def child_args():
    """Factory for fake_child.py argument strings."""
    return _child_arguments
