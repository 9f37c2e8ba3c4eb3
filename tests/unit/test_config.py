"""Tests for trellis.config."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from trellis.config import Config, find_config_file, find_repo_root, load_config


class TestConfigDefaults:
    """Tests for the default configuration."""

    def test_defaults(self) -> None:
        """An empty config has the documented defaults."""
        config = Config()
        assert config.project == "myapp"
        assert config.developer is None
        assert config.spec_dir == ".trellis/spec"
        assert config.default_priority == "P2"

    def test_default_pipeline(self) -> None:
        """The default pipeline is implement, check, finish, create-pr."""
        config = Config()
        assert [(s.phase, s.action) for s in config.default_pipeline] == [
            (1, "implement"),
            (2, "check"),
            (3, "finish"),
            (4, "create-pr"),
        ]

    def test_paths(self, tmp_path: Path) -> None:
        """Workflow and tasks paths hang off the repository root."""
        config = Config()
        assert config.get_workflow_path(tmp_path) == tmp_path / ".trellis"
        assert config.get_tasks_path(tmp_path) == tmp_path / ".trellis" / "tasks"


class TestFindRepoRoot:
    """Tests for find_repo_root."""

    def test_finds_parent_with_workflow_dir(self, tmp_path: Path) -> None:
        """Walks up from a nested directory to the one holding .trellis."""
        (tmp_path / ".trellis").mkdir()
        nested = tmp_path / "src" / "api"
        nested.mkdir(parents=True)
        assert find_repo_root(nested) == tmp_path.resolve()

    def test_falls_back_to_start(self, tmp_path: Path) -> None:
        """Without any .trellis above, the start directory is the root."""
        assert find_repo_root(tmp_path) == tmp_path.resolve()


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        """No config file means the default config."""
        assert find_config_file(tmp_path) is None
        assert load_config(tmp_path) == Config()

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        """An empty YAML file also means the default config."""
        (tmp_path / ".trellis").mkdir()
        (tmp_path / ".trellis" / "config.yaml").write_text("")
        assert load_config(tmp_path) == Config()

    def test_loads_values(self, tmp_path: Path) -> None:
        """Values in config.yaml override the defaults."""
        (tmp_path / ".trellis").mkdir()
        (tmp_path / ".trellis" / "config.yaml").write_text(yaml.dump({
            "project": "shop",
            "developer": "bob",
            "default_priority": "P1",
            "default_pipeline": [{"phase": 0, "action": "implement"}],
        }))

        config = load_config(tmp_path)

        assert config.project == "shop"
        assert config.developer == "bob"
        assert config.default_priority == "P1"
        assert len(config.default_pipeline) == 1

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        """A malformed pipeline entry fails validation."""
        (tmp_path / ".trellis").mkdir()
        (tmp_path / ".trellis" / "config.yaml").write_text(
            yaml.dump({"default_pipeline": [{"phase": "first"}]})
        )
        with pytest.raises(ValidationError):
            load_config(tmp_path)
