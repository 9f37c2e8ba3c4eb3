"""Task record storage for Trellis.

This module handles CRUD operations for tasks stored in .trellis/tasks/.
Each task lives in its own directory with a task.yaml record; completed
tasks are moved under tasks/archive/YYYY-MM/ instead of being deleted.
"""

import logging
import shutil
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from trellis.config import WORKFLOW_DIR, Config, load_config
from trellis.errors import TaskNotFoundError
from trellis.ids import (
    archive_month,
    dir_matches_slug,
    parse_task_dir_name,
    slugify,
    task_dir_name,
    validate_slug,
)
from trellis.pipeline import PhaseAction, validate_phase_order
from trellis.state_machine import TaskStatus

log = logging.getLogger("trellis.tasks")

TASK_FILE = "task.yaml"
ARCHIVE_DIR = "archive"


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string (second precision)."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Priority(str, Enum):
    """Task priority levels."""
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


class DevType(str, Enum):
    """Development type, selects the default context a task is seeded with."""
    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"
    TEST = "test"
    DOCS = "docs"


class Task(BaseModel):
    """A task in the trellis workflow."""
    model_config = ConfigDict(populate_by_name=True)

    _yaml_path: Path | None = PrivateAttr(default=None)

    id: str
    name: str = ""
    title: str = ""
    description: str = ""

    status: TaskStatus = TaskStatus.PLANNING
    dev_type: Optional[DevType] = None
    scope: Optional[str] = None
    priority: Priority = Priority.P2

    creator: str = ""
    assignee: str = ""

    created_at: str = Field(default="", alias="createdAt")
    completed_at: Optional[str] = Field(default=None, alias="completedAt")

    # Linkage metadata, never consulted for control flow
    branch: Optional[str] = None
    base_branch: Optional[str] = None
    worktree_path: Optional[str] = None
    commit: Optional[str] = None
    pr_url: Optional[str] = None

    current_phase: int = 0
    next_action: list[PhaseAction] = Field(default_factory=list)

    # Child task ids; completion does not cascade in either direction
    subtasks: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list, alias="relatedFiles")
    notes: str = ""

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_date_to_str(cls, v: Any) -> Any:
        """Coerce date/datetime objects to ISO strings.

        PyYAML auto-parses unquoted dates like `2026-01-11`, so records
        written by hand would otherwise fail validation.
        """
        if hasattr(v, "isoformat"):
            return v.isoformat()
        return v

    @field_validator("completed_at", mode="before")
    @classmethod
    def _coerce_optional_date_to_str(cls, v: Any) -> Any:
        if v is not None and hasattr(v, "isoformat"):
            return v.isoformat()
        return v

    @model_validator(mode="after")
    def _check_pipeline(self) -> "Task":
        validate_phase_order(self.next_action)
        if not 0 <= self.current_phase <= len(self.next_action):
            raise ValueError(
                f"current_phase {self.current_phase} outside [0, {len(self.next_action)}]"
            )
        return self

    @property
    def dir(self) -> Path | None:
        """Task directory path, derived from _yaml_path."""
        if self._yaml_path is not None:
            return self._yaml_path.parent
        return None

    @property
    def dir_name(self) -> str | None:
        """Name of the task directory (e.g. '01-21-login-fix')."""
        return self.dir.name if self.dir is not None else None

    @property
    def is_archived(self) -> bool:
        return self.status == TaskStatus.ARCHIVED

    @classmethod
    def from_yaml(cls, path: Path | str) -> "Task":
        """Load a Task from a YAML file.

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If the file is not valid YAML
            pydantic.ValidationError: If data is invalid
        """
        p = Path(path)
        data = yaml.safe_load(p.read_text())
        task = cls.model_validate(data or {})
        task._yaml_path = p
        return task

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted key layout (camelCase timestamps kept)."""
        return self.model_dump(by_alias=True, mode="json")

    def save(self) -> None:
        """Write this task to its YAML file.

        Raises:
            RuntimeError: If _yaml_path is not set
        """
        if self._yaml_path is None:
            raise RuntimeError("Cannot save: _yaml_path not set (use from_yaml or set _yaml_path)")
        with open(self._yaml_path, "w") as f:
            yaml.dump(self.to_record(), f, default_flow_style=False, sort_keys=False)


class TaskStore:
    """Persists one task record per directory under a workflow root.

    Args:
        repo_root: Directory containing .trellis
        config: Loaded configuration (read from repo_root if omitted)
    """

    def __init__(self, repo_root: Path, config: Optional[Config] = None) -> None:
        self.repo_root = Path(repo_root)
        self.config = config or load_config(self.repo_root)

    @property
    def workflow_path(self) -> Path:
        return self.repo_root / WORKFLOW_DIR

    @property
    def tasks_path(self) -> Path:
        return self.workflow_path / "tasks"

    @property
    def archive_path(self) -> Path:
        return self.tasks_path / ARCHIVE_DIR

    def ensure_dirs(self) -> None:
        """Create the tasks and archive directories."""
        self.archive_path.mkdir(parents=True, exist_ok=True)

    def _iter_task_dirs(self, base: Path) -> Iterator[Path]:
        if not base.exists():
            return
        for entry in sorted(base.iterdir()):
            if entry.is_dir() and entry.name != ARCHIVE_DIR and (entry / TASK_FILE).exists():
                yield entry

    def _load(self, task_dir: Path) -> Optional[Task]:
        try:
            return Task.from_yaml(task_dir / TASK_FILE)
        except Exception as e:
            log.warning("Skipping unreadable task record %s: %s", task_dir / TASK_FILE, e)
            return None

    def _find_dir(self, task_id: str, base: Path) -> Optional[Path]:
        """Find a task directory by exact directory name or record id."""
        candidates = list(self._iter_task_dirs(base))
        for task_dir in candidates:
            if task_dir.name == task_id:
                return task_dir
        for task_dir in candidates:
            if not dir_matches_slug(task_dir.name, task_id):
                continue
            task = self._load(task_dir)
            if task is not None and task.id == task_id:
                return task_dir
            # An unreadable record still owns its MM-DD-<slug> directory
            parsed = parse_task_dir_name(task_dir.name)
            if task is None and parsed is not None and parsed[2] == task_id:
                return task_dir
        return None

    def _archived_dirs(self) -> Iterator[Path]:
        if not self.archive_path.exists():
            return
        for month_dir in sorted(self.archive_path.iterdir()):
            if month_dir.is_dir():
                yield from self._iter_task_dirs(month_dir)

    def exists(self, task_id: str) -> bool:
        """Check whether an active (non-archived) task has this id."""
        return self._find_dir(task_id, self.tasks_path) is not None

    def create(
        self,
        title: str,
        slug: Optional[str] = None,
        *,
        description: str = "",
        priority: Priority | str | None = None,
        creator: Optional[str] = None,
        assignee: Optional[str] = None,
        next_action: Optional[list[PhaseAction]] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """Create a new task in the planning status.

        Args:
            title: Human-readable title
            slug: Task id (derived from the title when omitted)
            description: Optional description
            priority: Priority (default from config)
            creator: Creator name (default: config developer, then assignee)
            assignee: Assigned developer (default: config developer)
            next_action: Initial pipeline (default: empty)
            now: Creation moment, for deterministic directory names

        Returns:
            The created Task

        Raises:
            ValueError: If the slug is invalid or already taken (active or archived)
        """
        slug = validate_slug(slug) if slug else slugify(title)
        if not slug:
            raise ValueError(f"Could not generate slug from title: {title!r}")
        if self.exists(slug):
            raise ValueError(f"Task already exists: {slug}")
        # Archived ids stay reserved
        if self.get_archived(slug) is not None:
            raise ValueError(f"Task already exists in the archive: {slug}")

        self.ensure_dirs()
        task_dir = self.tasks_path / task_dir_name(slug, now)
        task_dir.mkdir()

        developer = self.config.developer or ""
        assignee = assignee or developer
        task = Task(
            id=slug,
            name=slug,
            title=title,
            description=description,
            priority=Priority(priority or self.config.default_priority),
            creator=creator or developer or assignee,
            assignee=assignee,
            created_at=utc_now(),
            next_action=list(next_action or []),
        )
        task._yaml_path = task_dir / TASK_FILE
        task.save()

        log.info("Created task %s in %s", slug, task_dir.name)
        return task

    def get(self, task_id: str) -> Task:
        """Get an active task by id.

        Raises:
            TaskNotFoundError: If no active task has this id
        """
        task_dir = self._find_dir(task_id, self.tasks_path)
        if task_dir is None:
            raise TaskNotFoundError(task_id)
        return Task.from_yaml(task_dir / TASK_FILE)

    def get_archived(self, task_id: str) -> Optional[Task]:
        """Get an archived task by id (most recent archive month wins)."""
        match: Optional[Task] = None
        for task_dir in self._archived_dirs():
            if dir_matches_slug(task_dir.name, task_id):
                task = self._load(task_dir)
                if task is not None and (task.id == task_id or task_dir.name == task_id):
                    match = task
        return match

    def lookup(self, task_id: str) -> Task:
        """Get a task by id, falling back to the archive.

        Raises:
            TaskNotFoundError: If the id is neither active nor archived
        """
        try:
            return self.get(task_id)
        except TaskNotFoundError:
            archived = self.get_archived(task_id)
            if archived is None:
                raise
            return archived

    def list_tasks(self, status: Optional[TaskStatus | str] = None) -> list[Task]:
        """List active tasks, optionally filtered by status.

        Unreadable records are skipped (and logged).
        """
        wanted = TaskStatus(status) if status else None
        tasks: list[Task] = []
        for task_dir in self._iter_task_dirs(self.tasks_path):
            task = self._load(task_dir)
            if task is None:
                continue
            if wanted is None or task.status == wanted:
                tasks.append(task)
        return tasks

    def list_archived(self, month: Optional[str] = None) -> list[tuple[str, Task]]:
        """List archived tasks as (month, task) pairs, oldest month first."""
        results: list[tuple[str, Task]] = []
        for task_dir in self._archived_dirs():
            if month and task_dir.parent.name != month:
                continue
            task = self._load(task_dir)
            if task is not None:
                results.append((task_dir.parent.name, task))
        return results

    def move_to_archive(self, task: Task, now: Optional[datetime] = None) -> Path:
        """Move a task directory into the archive namespace.

        The task's status must already be archived; the record is saved at its
        new location.

        Returns:
            The new task directory
        """
        if task.dir is None:
            raise RuntimeError("Cannot archive a task without a directory")

        month_dir = self.archive_path / archive_month(now)
        month_dir.mkdir(parents=True, exist_ok=True)
        dest = month_dir / task.dir.name
        if dest.exists():
            raise FileExistsError(f"Archive destination already exists: {dest}")

        shutil.move(str(task.dir), str(dest))
        task._yaml_path = dest / TASK_FILE
        task.save()
        return dest

    def relative_path(self, path: Path) -> str:
        """Path relative to the repository root, as stored for humans."""
        return str(Path(path).relative_to(self.repo_root))
