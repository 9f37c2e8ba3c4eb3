"""Context index: which files an agent must load for each pipeline action.

Every task keeps one bucket per action as a JSONL file next to its
task.yaml (implement.jsonl, check.jsonl, ...). Each line is one entry:

    {"file": ".trellis/spec/backend/index.md", "reason": "Backend development guide"}
    {"file": "src/api/", "type": "directory", "reason": "Existing handlers"}

Order inside a bucket is the order the agent sees the context in, and a
path appears at most once per bucket.
"""

import json
import logging
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from trellis.config import WORKFLOW_DIR
from trellis.errors import InvalidDevTypeError, TaskArchivedError, TaskNotFoundError
from trellis.pipeline import Action, parse_action
from trellis.state_machine import validate_status_transition
from trellis.tasks import DevType, Task, TaskStore

log = logging.getLogger("trellis.context")

DEV_TYPE_NAMES: list[str] = [d.value for d in DevType]

# Buckets seeded by init_defaults, in seeding order
SEEDED_ACTIONS = (Action.IMPLEMENT, Action.CHECK, Action.DEBUG)

COMMANDS_DIR = ".claude/commands/trellis"


class EntryType(str, Enum):
    """Kind of path a context entry points at."""
    FILE = "file"
    DIRECTORY = "directory"


class ContextEntry(BaseModel):
    """One piece of context to surface to an agent."""
    file: str
    type: Optional[EntryType] = None
    reason: str

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY

    def to_line(self) -> str:
        """Serialize as one JSONL line (type omitted for plain files)."""
        return self.model_dump_json(exclude_none=True)


@dataclass
class BucketReport:
    """Validation result for one action bucket."""

    action: Action
    entry_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "file": f"{self.action.value}.jsonl",
            "entryCount": self.entry_count,
            "errors": list(self.errors),
        }


def parse_dev_type(value: "str | DevType") -> DevType:
    """Parse a development type at the boundary.

    Raises:
        InvalidDevTypeError: If the value is not a recognized dev type
    """
    if isinstance(value, DevType):
        return value
    try:
        return DevType(value)
    except ValueError:
        raise InvalidDevTypeError(value, DEV_TYPE_NAMES) from None


def default_entries(action: Action, dev_type: DevType, spec_dir: str) -> list[ContextEntry]:
    """Baseline entries for one bucket of a task with the given dev type.

    Args:
        action: Bucket being seeded (implement, check or debug)
        dev_type: Development type of the task
        spec_dir: Spec directory relative to the repository root

    Returns:
        Entries in presentation order; empty for actions that are not seeded
    """
    backend = dev_type in (DevType.BACKEND, DevType.FULLSTACK)
    frontend = dev_type in (DevType.FRONTEND, DevType.FULLSTACK)
    shared = ContextEntry(file=f"{spec_dir}/shared/index.md", reason="Shared coding standards")

    entries: list[ContextEntry] = []

    if action == Action.IMPLEMENT:
        entries.append(ContextEntry(file=f"{WORKFLOW_DIR}/workflow.md", reason="Project workflow and conventions"))
        entries.append(shared)
        # Test tasks are written against the backend conventions
        if backend or dev_type == DevType.TEST:
            entries.append(ContextEntry(file=f"{spec_dir}/backend/index.md", reason="Backend development guide"))
            entries.append(ContextEntry(file=f"{spec_dir}/backend/api-module.md", reason="API module conventions"))
            entries.append(ContextEntry(file=f"{spec_dir}/backend/quality.md", reason="Code quality requirements"))
        if frontend:
            entries.append(ContextEntry(file=f"{spec_dir}/frontend/index.md", reason="Frontend development guide"))
            entries.append(ContextEntry(file=f"{spec_dir}/frontend/components.md", reason="Component conventions"))

    elif action in (Action.CHECK, Action.DEBUG):
        if action == Action.CHECK:
            entries.append(ContextEntry(file=f"{COMMANDS_DIR}/finish-work.md", reason="Finish work checklist"))
        entries.append(shared)
        if backend:
            entries.append(ContextEntry(file=f"{COMMANDS_DIR}/check-backend.md", reason="Backend check spec"))
        if frontend:
            entries.append(ContextEntry(file=f"{COMMANDS_DIR}/check-frontend.md", reason="Frontend check spec"))

    return entries


def read_bucket(path: Path, strict: bool = False) -> list[ContextEntry]:
    """Read a bucket file. A missing file is an empty bucket.

    Unparsable lines are skipped with a warning; validate() reports them.
    With strict=True they raise instead, so a rewrite never drops them.

    Raises:
        ValueError: If strict and a line is not a valid entry
    """
    if not path.exists():
        return []

    entries: list[ContextEntry] = []
    for line_num, line in enumerate(path.read_text().splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(ContextEntry.model_validate_json(line))
        except ValidationError:
            if strict:
                raise ValueError(
                    f"Invalid entry at {path.name}:{line_num}; fix or remove it before changing this bucket"
                ) from None
            log.warning("Skipping invalid entry at %s:%d", path.name, line_num)
    return entries


def write_bucket(path: Path, entries: list[ContextEntry]) -> None:
    """Rewrite a bucket file with the given entries."""
    path.write_text("".join(entry.to_line() + "\n" for entry in entries))


def upsert_entry(entries: list[ContextEntry], entry: ContextEntry) -> bool:
    """Insert an entry, or update the reason of an existing entry for the same path.

    The existing entry keeps its position.

    Returns:
        True if the list changed
    """
    for index, existing in enumerate(entries):
        if existing.file == entry.file:
            if existing.reason == entry.reason and existing.type == entry.type:
                return False
            entries[index] = existing.model_copy(update={"reason": entry.reason, "type": entry.type})
            return True
    entries.append(entry)
    return True


class ContextIndex:
    """Per-task, per-action context buckets.

    Args:
        store: Task store the buckets belong to
    """

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    @property
    def spec_dir(self) -> str:
        return self.store.config.spec_dir.rstrip("/")

    def bucket_path(self, task: Task, action: Action) -> Path:
        if task.dir is None:
            raise RuntimeError(f"Task {task.id} has no directory")
        return task.dir / f"{action.value}.jsonl"

    def _open_task(self, task_id: str) -> Task:
        """Load a task whose buckets may be read or changed.

        Raises:
            TaskArchivedError: If the task only exists in the archive
            TaskNotFoundError: If the task does not exist at all
        """
        try:
            task = self.store.get(task_id)
        except TaskNotFoundError:
            if self.store.get_archived(task_id) is not None:
                raise TaskArchivedError(task_id) from None
            raise
        if task.is_archived:
            raise TaskArchivedError(task_id)
        return task

    def _normalize_path(self, path: str) -> tuple[str, EntryType]:
        """Make a path repository-relative and detect directories."""
        candidate = Path(path)
        if candidate.is_absolute() and candidate.is_relative_to(self.store.repo_root):
            candidate = candidate.relative_to(self.store.repo_root)
        # One spelling per path, so upserts match ("./a.md" and "a.md")
        path = posixpath.normpath(candidate.as_posix())

        full_path = self.store.repo_root / path
        if full_path.is_dir():
            return (path if path.endswith("/") else path + "/"), EntryType.DIRECTORY

        if not full_path.exists():
            log.warning("Context path does not exist (yet): %s", path)
        return path, EntryType.FILE

    def init_defaults(self, task_id: str, dev_type: "str | DevType") -> dict[Action, list[ContextEntry]]:
        """Seed the implement, check and debug buckets for a dev type.

        Records the dev type on the task. Safe to call again: seeded paths are
        never duplicated.

        Returns:
            Resulting entries per seeded action

        Raises:
            InvalidDevTypeError: If dev_type is not recognized
            TaskNotFoundError: If the task does not exist
            TaskArchivedError: If the task is archived
            InvalidTransitionError: If the task is already completed
            ValueError: If a seeded bucket has an invalid line
        """
        parsed = parse_dev_type(dev_type)
        task = self._open_task(task_id)
        validate_status_transition(task.status, "init_context")

        # Read every bucket before writing anything
        buckets = {action: read_bucket(self.bucket_path(task, action), strict=True) for action in SEEDED_ACTIONS}

        if task.dev_type != parsed:
            task.dev_type = parsed
            task.save()

        result: dict[Action, list[ContextEntry]] = {}
        for action, entries in buckets.items():
            path = self.bucket_path(task, action)
            changed = False
            for entry in default_entries(action, parsed, self.spec_dir):
                changed = upsert_entry(entries, entry) or changed
            if changed or not path.exists():
                write_bucket(path, entries)
            result[action] = entries

        log.info("Initialized context for %s (dev_type=%s)", task.id, parsed.value)
        return result

    def add_entry(
        self,
        task_id: str,
        action: "str | Action",
        path: str,
        reason: str = "Added manually",
    ) -> ContextEntry:
        """Add a path to a bucket, or update its reason if already present.

        Directories are detected on disk and stored with a trailing slash.

        Returns:
            The stored entry

        Raises:
            UnknownActionError: If action is not a pipeline action
            TaskNotFoundError: If the task does not exist
            TaskArchivedError: If the task is archived
            ValueError: If the bucket has an invalid line
        """
        parsed = parse_action(action)
        task = self._open_task(task_id)

        file_path, entry_type = self._normalize_path(path)
        entry = ContextEntry(
            file=file_path,
            type=EntryType.DIRECTORY if entry_type == EntryType.DIRECTORY else None,
            reason=reason,
        )

        bucket = self.bucket_path(task, parsed)
        entries = read_bucket(bucket, strict=True)
        if upsert_entry(entries, entry):
            write_bucket(bucket, entries)
        return next(e for e in entries if e.file == file_path)

    def resolve(self, task_id: str, action: "str | Action") -> list[ContextEntry]:
        """Get the ordered entries of a bucket ([] when it was never created).

        Raises:
            UnknownActionError: If action is not a pipeline action
            TaskNotFoundError: If the task does not exist
            TaskArchivedError: If the task is archived
        """
        parsed = parse_action(action)
        task = self._open_task(task_id)
        return read_bucket(self.bucket_path(task, parsed))

    def list_context(self, task_id: str) -> dict[Action, list[ContextEntry]]:
        """All non-empty buckets of a task, in action declaration order."""
        task = self._open_task(task_id)
        result: dict[Action, list[ContextEntry]] = {}
        for action in Action:
            entries = read_bucket(self.bucket_path(task, action))
            if entries:
                result[action] = entries
        return result

    def validate(self, task_id: str) -> list[BucketReport]:
        """Check every bucket line parses and every path exists.

        The seeded buckets are always reported (a missing file is an error);
        other buckets only when their file exists.
        """
        task = self._open_task(task_id)
        reports: list[BucketReport] = []

        for action in Action:
            path = self.bucket_path(task, action)
            if not path.exists():
                if action in SEEDED_ACTIONS:
                    reports.append(BucketReport(action=action, errors=["File not found"]))
                continue

            report = BucketReport(action=action)
            for line_num, line in enumerate(path.read_text().splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                    entry = ContextEntry.model_validate(data)
                except (json.JSONDecodeError, ValidationError):
                    report.errors.append(f"Line {line_num}: Invalid entry")
                    continue

                full_path = self.store.repo_root / entry.file
                if entry.is_directory:
                    if not full_path.is_dir():
                        report.errors.append(f"Line {line_num}: Directory not found: {entry.file}")
                elif not full_path.exists():
                    report.errors.append(f"Line {line_num}: File not found: {entry.file}")
                report.entry_count += 1

            reports.append(report)

        return reports
