"""Task queue filtering and selection."""

from typing import Iterable, Optional, Union

from pydantic import BaseModel

from trellis.state_machine import TaskStatus
from trellis.tasks import DevType, Priority, Task


class TaskFilter(BaseModel):
    """Criteria for selecting tasks. Unset fields match everything."""

    status: Union[TaskStatus, list[TaskStatus], None] = None
    assignee: Optional[str] = None
    creator: Optional[str] = None
    priority: Union[Priority, list[Priority], None] = None
    dev_type: Optional[DevType] = None

    def matches(self, task: Task) -> bool:
        if self.status is not None:
            statuses = self.status if isinstance(self.status, list) else [self.status]
            if task.status not in statuses:
                return False
        if self.assignee is not None and task.assignee != self.assignee:
            return False
        if self.creator is not None and task.creator != self.creator:
            return False
        if self.priority is not None:
            priorities = self.priority if isinstance(self.priority, list) else [self.priority]
            if task.priority not in priorities:
                return False
        if self.dev_type is not None and task.dev_type != self.dev_type:
            return False
        return True


def filter_tasks(tasks: Iterable[Task], task_filter: TaskFilter) -> list[Task]:
    """Keep the tasks matching every criterion of the filter."""
    return [task for task in tasks if task_filter.matches(task)]


def get_ready_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Tasks that can be started (still planning)."""
    return filter_tasks(tasks, TaskFilter(status=TaskStatus.PLANNING))


def get_in_progress_tasks(tasks: Iterable[Task]) -> list[Task]:
    return filter_tasks(tasks, TaskFilter(status=TaskStatus.IN_PROGRESS))


def get_task_stats(tasks: Iterable[Task]) -> dict[str, int]:
    """Count tasks per priority, plus a total."""
    stats = {p.value: 0 for p in Priority}
    total = 0
    for task in tasks:
        stats[task.priority.value] += 1
        total += 1
    stats["total"] = total
    return stats


def format_task_stats(stats: dict[str, int]) -> str:
    """Format stats as e.g. "P0:1 P1:0 P2:3 P3:0 (total 4)"."""
    counts = " ".join(f"{p.value}:{stats.get(p.value, 0)}" for p in Priority)
    return f"{counts} (total {stats.get('total', 0)})"
