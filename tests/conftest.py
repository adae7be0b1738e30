"""Shared fixtures for setup tests.

Provides a StepContext rooted in a temp directory, mocks for subprocess and
PATH lookups, and a temp repo layout with env templates.
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from bootstrap import BootstrapSettings, Reporter, StepContext


# ---------------------------------------------------------------------------
# Core objects
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(monkeypatch):
    """Default settings, unaffected by BOOTSTRAP_* variables in the caller's shell."""
    for key in list(os.environ):
        if key.startswith("BOOTSTRAP_"):
            monkeypatch.delenv(key)
    return BootstrapSettings()


@pytest.fixture
def reporter():
    return Reporter(color_enabled=False)


@pytest.fixture
def context(tmp_path):
    """StepContext rooted at a temp repo with an isolated PATH and HOME."""
    home = tmp_path / "home"
    home.mkdir()
    root = tmp_path / "repo"
    root.mkdir()
    return StepContext(root, env={"PATH": "/usr/bin:/bin", "HOME": str(home)})


@pytest.fixture
def repo(context):
    """Create the root/backend/frontend directory layout with env templates."""
    root = context.root
    (root / ".env.example").write_text("APP_ENV=development\n")
    for name in ("backend", "frontend"):
        app_dir = root / "apps" / name
        app_dir.mkdir(parents=True)
        (app_dir / ".env.sample").write_text(f"{name.upper()}_PORT=8000\n")
    return root


# ---------------------------------------------------------------------------
# Subprocess / PATH mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Patch subprocess.run with a configurable MagicMock.

    The mock returns returncode=0 and empty stdout/stderr by default.
    Tests can override via mock_subprocess.return_value or side_effect.
    """
    mock_result = MagicMock()
    mock_result.returncode = 0
    mock_result.stdout = ""
    mock_result.stderr = ""

    with patch("bootstrap.subprocess.run", return_value=mock_result) as mock_run:
        yield mock_run


@pytest.fixture
def available_tools():
    """Patch PATH lookups; returns the mutable set of commands that resolve.

    Usage:
        def test_something(available_tools):
            available_tools.update({"node", "npm"})
    """
    tools = set()

    def _which(cmd, path=None):
        return f"/usr/bin/{cmd}" if cmd in tools else None

    with patch("bootstrap.shutil.which", side_effect=_which):
        yield tools
