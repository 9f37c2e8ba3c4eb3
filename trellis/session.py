"""Current-task pointer for a workflow root.

The pointer records which task is active for context injection. It is a
plain object handed to whoever needs it rather than module-level state, so
tests and embedding callers can point it at any workflow root.

Writes take a file lock so two processes racing on `trellis task start`
cannot interleave a read-check-write sequence.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator, Optional

from filelock import FileLock

from trellis.config import WORKFLOW_DIR
from trellis.errors import TaskNotFoundError

if TYPE_CHECKING:
    from trellis.tasks import TaskStore

log = logging.getLogger("trellis.session")

POINTER_FILE = ".current-task"

# Lock timeout in seconds - prevents deadlocks if a process crashes while holding lock
_LOCK_TIMEOUT = 5.0


class CurrentTaskPointer:
    """Single nullable reference to the active task of a workflow root.

    Args:
        store: Task store used to check that pointed-to tasks exist
    """

    def __init__(self, store: "TaskStore") -> None:
        self.store = store
        self._lock: Optional[FileLock] = None

    @property
    def path(self) -> Path:
        return self.store.repo_root / WORKFLOW_DIR / POINTER_FILE

    @property
    def lock_path(self) -> Path:
        """Sibling lock file used by filelock to coordinate access."""
        return self.path.parent / f"{POINTER_FILE}.lock"

    @contextmanager
    def locked(self) -> Generator[None, None, None]:
        """Context manager for exclusive access to the pointer file.

        Use this around read-modify-write sequences.

        Raises:
            Timeout: If lock cannot be acquired within _LOCK_TIMEOUT seconds

        Example:
            with pointer.locked():
                if pointer.get() is None:
                    pointer.set("login-fix")
        """
        if self._lock is None:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(self.lock_path, timeout=_LOCK_TIMEOUT)

        # One lock object per pointer: acquiring it again while held nests
        with self._lock:
            yield

    def get(self) -> Optional[str]:
        """Get the current task id, or None when no task is active."""
        if not self.path.exists():
            return None
        value = self.path.read_text().strip()
        return value or None

    def set(self, task_id: str) -> None:
        """Point at a task.

        Raises:
            TaskNotFoundError: If no active task has this id
        """
        if not self.store.exists(task_id):
            raise TaskNotFoundError(task_id)

        with self.locked():
            self.path.write_text(task_id + "\n")
        log.debug("Current task set to %s", task_id)

    def clear(self) -> Optional[str]:
        """Clear the pointer. Clearing an empty pointer is a no-op.

        Returns:
            The task id that was current, if any
        """
        with self.locked():
            previous = self.get()
            self.path.unlink(missing_ok=True)
        if previous:
            log.debug("Cleared current task (was %s)", previous)
        return previous

    def is_current(self, task_id: str) -> bool:
        return self.get() == task_id
