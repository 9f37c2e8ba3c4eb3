"""High-level API for Trellis operations.

This module composes the task store, the context index and the current-task
pointer into the workflow operations a CLI, hook script or orchestrating
agent calls. Every operation either returns its result or raises one of the
errors in trellis.errors; nothing is retried.

Example:
    from trellis.api import Workflow

    wf = Workflow.open()
    task = wf.create_task("Fix login redirect", pipeline=[(0, "implement"), (1, "check")])
    wf.init_context(task.id, "backend")
    wf.start_task(task.id)
    wf.advance_phase(task.id)
    wf.complete_task(task.id)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from trellis.config import Config, find_repo_root, load_config
from trellis.context import ContextEntry, ContextIndex
from trellis.errors import (
    AlreadyActiveError,
    IncompletePipelineError,
    InvalidDevTypeError,
    PhaseOutOfRangeError,
    TaskArchivedError,
    TaskNotFoundError,
    TrellisError,
    UnknownActionError,
)
from trellis.pipeline import Action, PhaseAction, build_pipeline, is_last_phase
from trellis.session import CurrentTaskPointer
from trellis.state_machine import InvalidTransitionError, TaskStatus, validate_status_transition
from trellis.tasks import DevType, Priority, Task, TaskStore, utc_now

log = logging.getLogger("trellis.api")

__all__ = [
    "Workflow",
    "METADATA_FIELDS",
    "TrellisError",
    "TaskNotFoundError",
    "AlreadyActiveError",
    "PhaseOutOfRangeError",
    "IncompletePipelineError",
    "UnknownActionError",
    "InvalidDevTypeError",
    "TaskArchivedError",
    "InvalidTransitionError",
]

# Fields update_metadata may touch; lifecycle fields only change through operations
METADATA_FIELDS = frozenset({
    "title",
    "description",
    "scope",
    "priority",
    "assignee",
    "branch",
    "base_branch",
    "worktree_path",
    "commit",
    "pr_url",
    "subtasks",
    "related_files",
    "notes",
})

PipelineSpec = Iterable["PhaseAction | tuple[int, str | Action]"]


def _to_pipeline(steps: PipelineSpec) -> list[PhaseAction]:
    pairs = [
        (step.phase, step.action) if isinstance(step, PhaseAction) else (step[0], step[1])
        for step in steps
    ]
    return build_pipeline(pairs)


class Workflow:
    """Task lifecycle operations for one workflow root.

    Args:
        repo_root: Directory containing .trellis
        config: Configuration (loaded from repo_root if omitted)
        pointer: Current-task pointer to use (one bound to the store if omitted)
    """

    def __init__(
        self,
        repo_root: Path,
        config: Optional[Config] = None,
        pointer: Optional[CurrentTaskPointer] = None,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.config = config or load_config(self.repo_root)
        self.store = TaskStore(self.repo_root, self.config)
        self.index = ContextIndex(self.store)
        self.pointer = pointer or CurrentTaskPointer(self.store)

    @classmethod
    def open(cls, path: Optional[Path] = None) -> "Workflow":
        """Open the workflow whose root contains ``path`` (default: cwd)."""
        root = find_repo_root(path)
        return cls(root, load_config(root))

    def init(self) -> Path:
        """Create the .trellis/tasks layout. Returns the tasks directory."""
        self.store.ensure_dirs()
        return self.store.tasks_path

    # -- records --------------------------------------------------------

    def _get_open(self, task_id: str) -> Task:
        """Get an active task, distinguishing archived ids from unknown ones."""
        try:
            return self.store.get(task_id)
        except TaskNotFoundError:
            if self.store.get_archived(task_id) is not None:
                raise TaskArchivedError(task_id) from None
            raise

    def create_task(
        self,
        title: str,
        slug: Optional[str] = None,
        *,
        description: str = "",
        priority: Priority | str | None = None,
        assignee: Optional[str] = None,
        creator: Optional[str] = None,
        pipeline: Optional[PipelineSpec] = None,
    ) -> Task:
        """Create a task in planning status with current_phase 0.

        The pipeline is empty unless given.
        """
        next_action = _to_pipeline(pipeline) if pipeline is not None else []
        return self.store.create(
            title,
            slug,
            description=description,
            priority=priority,
            assignee=assignee,
            creator=creator,
            next_action=next_action,
        )

    def default_pipeline(self) -> list[PhaseAction]:
        """The configured default pipeline."""
        return _to_pipeline((step.phase, step.action) for step in self.config.default_pipeline)

    def get_task(self, task_id: str) -> Task:
        """Get a task by id; archived tasks stay readable.

        Raises:
            TaskNotFoundError: If the id is unknown
        """
        return self.store.lookup(task_id)

    def list_tasks(self, status: Optional[TaskStatus | str] = None) -> list[Task]:
        """List active (non-archived) tasks."""
        return self.store.list_tasks(status)

    def list_archived(self, month: Optional[str] = None) -> list[tuple[str, Task]]:
        """List archived tasks as (month, task) pairs."""
        return self.store.list_archived(month)

    def update_metadata(self, task_id: str, **fields: Any) -> Task:
        """Update descriptive fields of an open task.

        Raises:
            ValueError: If a field is not a metadata field
            TaskNotFoundError: If the task does not exist
            TaskArchivedError: If the task is archived
        """
        unknown = set(fields) - METADATA_FIELDS
        if unknown:
            raise ValueError(f"Not a metadata field: {', '.join(sorted(unknown))}")

        task = self._get_open(task_id)
        updated = Task.model_validate({**task.model_dump(), **fields})
        updated._yaml_path = task._yaml_path
        updated.save()
        return updated

    def set_pipeline(self, task_id: str, steps: PipelineSpec) -> Task:
        """Replace the phase pipeline of a planning or in-progress task.

        Raises:
            ValueError: If phase numbers decrease
            UnknownActionError: If a step names an unknown action
            PhaseOutOfRangeError: If current_phase would fall outside the new pipeline
            InvalidTransitionError: If the task is completed
        """
        pipeline = _to_pipeline(steps)
        task = self._get_open(task_id)
        validate_status_transition(task.status, "set_pipeline")

        if task.current_phase > len(pipeline):
            raise PhaseOutOfRangeError(task.id, task.current_phase, len(pipeline))

        task.next_action = pipeline
        task.save()
        return task

    # -- context --------------------------------------------------------

    def init_context(self, task_id: str, dev_type: "str | DevType") -> dict[Action, list[ContextEntry]]:
        """Seed the default context buckets for a dev type."""
        return self.index.init_defaults(task_id, dev_type)

    def add_context(self, task_id: str, action: "str | Action", path: str, reason: str = "Added manually") -> ContextEntry:
        """Add (or re-reason) one context entry."""
        return self.index.add_entry(task_id, action, path, reason)

    def resolve_context(self, task_id: str, action: "str | Action") -> list[ContextEntry]:
        """Ordered context entries for an action."""
        return self.index.resolve(task_id, action)

    # -- lifecycle ------------------------------------------------------

    def current_task(self) -> Optional[Task]:
        """The task the pointer references, or None.

        A pointer to a task that is no longer active counts as empty.
        """
        task_id = self.pointer.get()
        if task_id is None:
            return None
        try:
            return self.store.get(task_id)
        except TaskNotFoundError:
            log.warning("Current-task pointer references missing task %s", task_id)
            return None

    def start_task(self, task_id: str, force: bool = False) -> Task:
        """Make a task the current task, moving it to in_progress.

        Re-starting the task that is already current is a no-op.

        Raises:
            TaskNotFoundError: If the task does not exist
            TaskArchivedError: If the task is archived
            AlreadyActiveError: If another task is current and force is False
            InvalidTransitionError: If the task is completed
        """
        with self.pointer.locked():
            task = self._get_open(task_id)
            active = self.pointer.get()

            if active == task.id and task.status == TaskStatus.IN_PROGRESS:
                return task

            new_status = validate_status_transition(task.status, "start")

            if active and active != task.id:
                if not self.store.exists(active):
                    log.warning("Replacing stale current-task pointer %s", active)
                elif not force:
                    raise AlreadyActiveError(task.id, active)
                else:
                    log.info("Switching current task from %s to %s", active, task.id)

            if task.status != new_status:
                task.status = new_status
                task.save()
            self.pointer.set(task.id)

        log.info("Started task %s", task.id)
        return task

    def advance_phase(self, task_id: str) -> Task:
        """Move an in-progress task to its next pipeline step.

        Raises:
            PhaseOutOfRangeError: If the task is already on its last step
                (always the case for an empty pipeline)
            InvalidTransitionError: If the task is not in progress
        """
        task = self._get_open(task_id)
        validate_status_transition(task.status, "advance")

        if task.current_phase + 1 >= len(task.next_action):
            raise PhaseOutOfRangeError(task.id, task.current_phase, len(task.next_action))

        task.current_phase += 1
        task.save()
        log.info("Task %s advanced to phase index %d", task.id, task.current_phase)
        return task

    def finish_task(self, task_id: Optional[str] = None) -> Optional[str]:
        """End the working session on a task without changing its status.

        With no task id the pointer is cleared unconditionally.

        Returns:
            The task id that was cleared from the pointer, if any

        Raises:
            TaskNotFoundError: If the task does not exist
            InvalidTransitionError: If the task is not in progress
        """
        if task_id is None:
            return self.pointer.clear()

        task = self._get_open(task_id)
        validate_status_transition(task.status, "finish")

        with self.pointer.locked():
            if self.pointer.is_current(task.id):
                return self.pointer.clear()
        return None

    def complete_task(self, task_id: str) -> Task:
        """Mark an in-progress task completed once its last phase is reached.

        Raises:
            IncompletePipelineError: If current_phase is not the last index
            InvalidTransitionError: If the task is not in progress
        """
        task = self._get_open(task_id)
        validate_status_transition(task.status, "complete")

        if not is_last_phase(task):
            raise IncompletePipelineError(task.id, task.current_phase, len(task.next_action))

        task.status = TaskStatus.COMPLETED
        task.completed_at = utc_now()
        task.save()
        log.info("Completed task %s", task.id)
        return task

    def archive_task(self, task_id: str) -> Task:
        """Move a completed task into the archive.

        The current-task pointer is cleared if it references the task, once the
        directory has moved.

        Raises:
            FileExistsError: If the archive destination is already taken
            InvalidTransitionError: If the task is not completed
        """
        task = self._get_open(task_id)
        validate_status_transition(task.status, "archive")

        task.status = TaskStatus.ARCHIVED
        dest = self.store.move_to_archive(task)

        with self.pointer.locked():
            if self.pointer.is_current(task.id):
                self.pointer.clear()

        log.info("Archived task %s to %s", task.id, self.store.relative_path(dest))
        return task
