"""Phase pipeline helpers.

A pipeline is the ordered list of (phase, action) pairs a task traverses.
``current_phase`` is an index into that list, not a phase number: two
actions may share a phase number when they run side by side.
"""

from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from pydantic import BaseModel, Field

from trellis.errors import UnknownActionError

if TYPE_CHECKING:
    from trellis.tasks import Task


class Action(str, Enum):
    """Pipeline actions an agent can be asked to perform."""

    IMPLEMENT = "implement"
    CHECK = "check"
    DEBUG = "debug"
    FINISH = "finish"
    CREATE_PR = "create-pr"


ACTION_NAMES: list[str] = [a.value for a in Action]


class PhaseAction(BaseModel):
    """A single step of the pipeline."""

    phase: int = Field(ge=0)
    action: Action


def parse_action(value: "str | Action") -> Action:
    """Parse an action name at the boundary.

    Accepts the bare name ("check") or a bucket filename ("check.jsonl").

    Raises:
        UnknownActionError: If the name is not a pipeline action
    """
    if isinstance(value, Action):
        return value
    name = value[: -len(".jsonl")] if value.endswith(".jsonl") else value
    try:
        return Action(name)
    except ValueError:
        raise UnknownActionError(value, ACTION_NAMES) from None


def validate_phase_order(steps: Iterable[PhaseAction]) -> None:
    """Check that phase numbers never decrease along the pipeline.

    Raises:
        ValueError: On the first step whose phase is lower than its predecessor's
    """
    previous: Optional[int] = None
    for index, step in enumerate(steps):
        if previous is not None and step.phase < previous:
            raise ValueError(
                f"Phase numbers must be non-decreasing: step {index} has phase "
                f"{step.phase} after phase {previous}"
            )
        previous = step.phase


def build_pipeline(pairs: Iterable[tuple[int, "str | Action"]]) -> list[PhaseAction]:
    """Build and validate a pipeline from (phase, action) pairs."""
    steps = [PhaseAction(phase=phase, action=parse_action(action)) for phase, action in pairs]
    validate_phase_order(steps)
    return steps


def parse_step(step: str) -> tuple[int, str]:
    """Parse a "PHASE:ACTION" string (e.g. "1:implement").

    Raises:
        ValueError: If the string is not of that shape
    """
    phase, sep, action = step.partition(":")
    if not sep or not phase.strip().isdigit() or not action.strip():
        raise ValueError(f"Expected PHASE:ACTION, got {step!r}")
    return int(phase), action.strip()


def current_step(task: "Task") -> Optional[PhaseAction]:
    """Get the pipeline step the task is currently at, if any."""
    if 0 <= task.current_phase < len(task.next_action):
        return task.next_action[task.current_phase]
    return None


def current_action(task: "Task") -> Optional[Action]:
    """Get the action of the current pipeline step, if any."""
    step = current_step(task)
    return step.action if step else None


def actions_for_phase(task: "Task", phase: int) -> list[Action]:
    """Get every action declared under a phase number, in pipeline order."""
    return [step.action for step in task.next_action if step.phase == phase]


def is_phase_completed(task: "Task", index: int) -> bool:
    """Check whether the step at ``index`` lies behind the current phase."""
    return task.current_phase > index


def is_last_phase(task: "Task") -> bool:
    """Check whether the task sits on the final pipeline step."""
    return bool(task.next_action) and task.current_phase == len(task.next_action) - 1


def phase_info(task: "Task") -> str:
    """Format progress for display, e.g. "2/4 (check)".

    The position is one-based; an empty pipeline renders as "0/0 (none)".
    """
    total = len(task.next_action)
    action = current_action(task)
    if action is None:
        return f"{min(task.current_phase, total)}/{total} (none)"
    return f"{task.current_phase + 1}/{total} ({action.value})"
