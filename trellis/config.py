"""Configuration management for Trellis."""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

WORKFLOW_DIR = ".trellis"
CONFIG_FILE = "config.yaml"


class PhaseDefault(BaseModel):
    """One step of the configured default pipeline."""

    phase: int
    action: str


def _default_pipeline() -> List[PhaseDefault]:
    return [
        PhaseDefault(phase=1, action="implement"),
        PhaseDefault(phase=2, action="check"),
        PhaseDefault(phase=3, action="finish"),
        PhaseDefault(phase=4, action="create-pr"),
    ]


class Config(BaseModel):
    """Trellis configuration."""

    project: str = "myapp"
    developer: Optional[str] = None
    spec_dir: str = f"{WORKFLOW_DIR}/spec"
    default_priority: str = "P2"
    default_pipeline: List[PhaseDefault] = Field(default_factory=_default_pipeline)

    def get_workflow_path(self, repo_root: Path) -> Path:
        """Get the .trellis directory for a repository root."""
        return repo_root / WORKFLOW_DIR

    def get_tasks_path(self, repo_root: Path) -> Path:
        """Get the directory holding active task directories."""
        return self.get_workflow_path(repo_root) / "tasks"


def find_repo_root(start_path: Optional[Path] = None) -> Path:
    """Find the workflow root by walking up to the first directory holding .trellis.

    Args:
        start_path: Directory to start searching from (default: current directory)

    Returns:
        The directory containing .trellis, or start_path itself when none is found
    """
    start = (start_path or Path.cwd()).resolve()
    current = start

    while True:
        if (current / WORKFLOW_DIR).is_dir():
            return current

        parent = current.parent
        if parent == current:
            break
        current = parent

    return start


def find_config_file(start_path: Path) -> Optional[Path]:
    """Find .trellis/config.yaml by walking up the directory tree.

    Args:
        start_path: Directory to start searching from

    Returns:
        Path to config file, or None if not found
    """
    config_file = find_repo_root(start_path) / WORKFLOW_DIR / CONFIG_FILE
    if config_file.exists():
        return config_file
    return None


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from .trellis/config.yaml.

    Args:
        path: Directory to start the search from (default: current directory)

    Returns:
        Loaded configuration (or default if file not found)
    """
    if path is None:
        path = Path.cwd()

    config_file = find_config_file(path)

    if config_file is None:
        return Config()

    with open(config_file, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Config()

    return Config(**data)
