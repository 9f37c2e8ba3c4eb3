"""Pytest configuration and fixtures for trellis tests.

Every fixture builds a throwaway workflow root under tmp_path so tests never
touch the real repository's .trellis directory.
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from trellis.api import Workflow
from trellis.config import Config


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    """A workflow root with an initialized .trellis/tasks layout."""
    (tmp_path / ".trellis" / "tasks" / "archive").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def workflow(repo_root: Path) -> Workflow:
    """A Workflow over repo_root with a known developer configured."""
    return Workflow(repo_root, Config(developer="alice"))


@pytest.fixture
def spec_files(repo_root: Path) -> Path:
    """Write the shared and backend guideline files the default context refers to."""
    spec_dir = repo_root / ".trellis" / "spec"
    for rel in ("shared/index.md", "backend/index.md", "backend/api-module.md", "backend/quality.md"):
        path = spec_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"# {rel}\n")
    (repo_root / ".trellis" / "workflow.md").write_text("# Workflow\n")
    return spec_dir


@pytest.fixture
def cli_runner():
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def in_repo(repo_root: Path, monkeypatch) -> Path:
    """Run the test from inside repo_root, as the CLI expects."""
    monkeypatch.chdir(repo_root)
    return repo_root
