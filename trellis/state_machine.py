"""State machine for the Trellis task lifecycle.

This module uses the transitions library to validate and apply task status
changes. It centralizes lifecycle rules and prevents invalid transitions.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from transitions import Machine

from trellis.errors import TrellisError


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class InvalidTransitionError(TrellisError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, source: str, trigger: str, message: Optional[str] = None) -> None:
        self.source = source
        self.trigger = trigger
        if message:
            super().__init__(message)
        else:
            super().__init__(f"Cannot {trigger} a task in status '{source}'")


class TaskStateMachine:
    """State machine for managing task status transitions.

    Each trigger corresponds to one workflow operation. Triggers that leave
    the status unchanged (advance, finish, init_context, set_pipeline) are
    still declared so the machine says in which statuses they are legal.

    Example usage:
        >>> sm = TaskStateMachine()
        >>> sm.get_valid_triggers()
        ['start', 'init_context', 'set_pipeline']
        >>> sm.fire("start")
        'in_progress'
        >>> sm.fire("archive")  # Raises InvalidTransitionError
    """

    STATES = [s.value for s in TaskStatus]

    TRANSITIONS = [
        # Session start: planning moves forward, in_progress just re-points
        {"trigger": "start", "source": "planning", "dest": "in_progress"},
        {"trigger": "start", "source": "in_progress", "dest": "in_progress"},
        # Context and pipeline edits while the task is still open
        {"trigger": "init_context", "source": "planning", "dest": "planning"},
        {"trigger": "init_context", "source": "in_progress", "dest": "in_progress"},
        {"trigger": "set_pipeline", "source": "planning", "dest": "planning"},
        {"trigger": "set_pipeline", "source": "in_progress", "dest": "in_progress"},
        # Phase work
        {"trigger": "advance", "source": "in_progress", "dest": "in_progress"},
        {"trigger": "finish", "source": "in_progress", "dest": "in_progress"},
        # Completion and archival
        {"trigger": "complete", "source": "in_progress", "dest": "completed"},
        {"trigger": "archive", "source": "completed", "dest": "archived"},
    ]

    def __init__(self, initial_state: str = "planning") -> None:
        """Initialize the state machine.

        Args:
            initial_state: Initial status for the machine (default: "planning")

        Raises:
            ValueError: If the initial status is not valid
        """
        initial_state = _status_value(initial_state)
        if initial_state not in self.STATES:
            raise ValueError(f"Invalid state: '{initial_state}'. Valid states: {self.STATES}")

        self._state = initial_state

        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=initial_state,
            auto_transitions=False,  # Only allow explicitly defined transitions
            send_event=False,
        )

    @property
    def current_state(self) -> str:
        """Get the current state."""
        return str(getattr(self, "state", self._state))

    def validate(self, trigger: str) -> str:
        """Validate a trigger from the current state.

        Returns:
            The destination state

        Raises:
            InvalidTransitionError: If the trigger is not legal here
        """
        if trigger not in self.machine.events:
            raise InvalidTransitionError(
                self.current_state, trigger, f"Unknown trigger: '{trigger}'"
            )

        if trigger not in self.get_valid_triggers():
            raise InvalidTransitionError(self.current_state, trigger)
        return self.machine.get_transitions(trigger, source=self.current_state)[0].dest

    def fire(self, trigger: str) -> str:
        """Apply a trigger and return the new state.

        Raises:
            InvalidTransitionError: If the trigger is not legal here
        """
        self.validate(trigger)
        self.trigger(trigger)
        return self.current_state

    def get_valid_triggers(self) -> list[str]:
        """Get the triggers that are legal from the current state."""
        return self.machine.get_triggers(self.current_state)


def _status_value(status: "str | TaskStatus") -> str:
    return status.value if isinstance(status, TaskStatus) else status


def validate_status_transition(status: "str | TaskStatus", trigger: str) -> TaskStatus:
    """Validate a trigger against a task status without keeping a machine around.

    Returns:
        The status the task would move to

    Raises:
        InvalidTransitionError: If the trigger is not legal from ``status``
    """
    sm = TaskStateMachine(initial_state=_status_value(status))
    return TaskStatus(sm.fire(trigger))
