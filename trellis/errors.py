"""Workflow errors raised by the Trellis core.

Every error here is a caller-input or precondition violation. None of them
are transient, so nothing in the core retries them.
"""

from typing import Optional

__all__ = [
    "TrellisError",
    "TaskNotFoundError",
    "AlreadyActiveError",
    "PhaseOutOfRangeError",
    "IncompletePipelineError",
    "UnknownActionError",
    "InvalidDevTypeError",
    "TaskArchivedError",
]


class TrellisError(Exception):
    """Base class for workflow-integrity errors."""


class TaskNotFoundError(TrellisError):
    """Raised when no active task has the given id."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class AlreadyActiveError(TrellisError):
    """Raised when starting a task while another task is current."""

    def __init__(self, task_id: str, active_id: str):
        self.task_id = task_id
        self.active_id = active_id
        super().__init__(
            f"Cannot start {task_id}: task {active_id} is already active. "
            f"Finish it first or use force=True to switch."
        )


class PhaseOutOfRangeError(TrellisError):
    """Raised when a phase index would leave the task's pipeline."""

    def __init__(self, task_id: str, current_phase: int, length: int):
        self.task_id = task_id
        self.current_phase = current_phase
        self.length = length
        super().__init__(
            f"Phase out of range for {task_id}: current phase {current_phase}, "
            f"pipeline has {length} action(s)"
        )


class IncompletePipelineError(TrellisError):
    """Raised when completing a task that has not reached its last phase."""

    def __init__(self, task_id: str, current_phase: int, length: int):
        self.task_id = task_id
        self.current_phase = current_phase
        self.length = length
        super().__init__(
            f"Cannot complete {task_id}: at phase {current_phase} of {length} "
            f"(must reach index {length - 1})"
        )


class UnknownActionError(TrellisError):
    """Raised for an action name outside the pipeline action set."""

    def __init__(self, action: str, valid: Optional[list[str]] = None):
        self.action = action
        message = f"Unknown action: {action!r}"
        if valid:
            message += f". Valid actions: {', '.join(valid)}"
        super().__init__(message)


class InvalidDevTypeError(TrellisError):
    """Raised for a development type outside the recognized set."""

    def __init__(self, dev_type: str, valid: Optional[list[str]] = None):
        self.dev_type = dev_type
        message = f"Invalid dev_type: {dev_type!r}"
        if valid:
            message += f". Use: {', '.join(valid)}"
        super().__init__(message)


class TaskArchivedError(TrellisError):
    """Raised when mutating or resolving context of an archived task."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} is archived")
