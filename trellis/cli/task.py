"""Task commands (create, list, show, pipeline, start, finish, advance, complete, archive)."""

import json
from typing import Optional

import click
from rich.table import Table

from trellis.cli._utils import console, fail, get_workflow, require_initialized, workflow_errors
from trellis.pipeline import parse_step, phase_info
from trellis.queue import TaskFilter, filter_tasks, format_task_stats, get_task_stats
from trellis.state_machine import TaskStatus
from trellis.tasks import Priority, Task


def _task_json(task: Task, is_current: bool = False) -> dict:
    data = task.to_record()
    if task.dir_name:
        data["dirName"] = task.dir_name
    data["isCurrent"] = is_current
    return data


@click.group()
def task() -> None:
    """Manage trellis tasks.

    Tasks are stored in .trellis/tasks/ and move through
    planning -> in_progress -> completed -> archived.
    """
    pass


@task.command("create")
@click.argument("title")
@click.option("--slug", help="Task id (default: derived from the title)")
@click.option(
    "--priority", "-p",
    type=click.Choice([p.value for p in Priority]),
    default=None,
    help="Task priority (default from config, P2)"
)
@click.option("--description", "-d", default="", help="Short description")
@click.option("--assignee", "-a", help="Assigned developer (default: config developer)")
@click.option(
    "--default-pipeline",
    is_flag=True,
    help="Start with the configured pipeline (implement, check, finish, create-pr)"
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def task_create(
    title: str,
    slug: Optional[str],
    priority: Optional[str],
    description: str,
    assignee: Optional[str],
    default_pipeline: bool,
    as_json: bool,
) -> None:
    """Create a new task in planning status.

    Example:
        trellis task create "Fix login redirect" --slug login-fix -p P1
    """
    wf = get_workflow()
    require_initialized(wf)

    with workflow_errors():
        new_task = wf.create_task(
            title,
            slug,
            description=description,
            priority=priority,
            assignee=assignee,
            pipeline=wf.default_pipeline() if default_pipeline else None,
        )

    if as_json:
        print(json.dumps(_task_json(new_task)))
        return

    console.print(f"[green]✓ Created task {new_task.id}[/green]")
    console.print(f"[dim]  {wf.store.relative_path(new_task.dir)}/[/dim]")
    console.print("\n[bold]Next steps:[/bold]")
    console.print(f"  1. Seed context: [cyan]trellis context init {new_task.id} <dev_type>[/cyan]")
    if not new_task.next_action:
        console.print(f"  2. Set pipeline: [cyan]trellis task pipeline {new_task.id} 0:implement 1:check[/cyan]")
    console.print(f"  3. Start it: [cyan]trellis task start {new_task.id}[/cyan]")


@task.command("list")
@click.option(
    "--status", "-s",
    type=click.Choice([s.value for s in TaskStatus if s != TaskStatus.ARCHIVED]),
    help="Filter by status"
)
@click.option("--mine", is_flag=True, help="Only tasks assigned to the configured developer")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def task_list(status: Optional[str], mine: bool, as_json: bool) -> None:
    """List active tasks.

    Examples:
        trellis task list
        trellis task list --status in_progress
        trellis task list --mine --json
    """
    wf = get_workflow()
    require_initialized(wf)

    task_filter = TaskFilter(status=TaskStatus(status) if status else None)
    if mine:
        if not wf.config.developer:
            fail("No developer configured. Set 'developer' in .trellis/config.yaml")
        task_filter.assignee = wf.config.developer

    tasks = filter_tasks(wf.list_tasks(), task_filter)
    current = wf.pointer.get()

    if as_json:
        print(json.dumps([_task_json(t, t.id == current) for t in tasks], indent=2))
        return

    if not tasks:
        console.print("[yellow]No active tasks[/yellow]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Status", style="magenta")
    table.add_column("Phase", style="blue")
    table.add_column("Priority", style="yellow")
    table.add_column("Assignee")

    for t in tasks:
        marker = " [green]<- current[/green]" if t.id == current else ""
        table.add_row(
            f"{t.id}{marker}",
            t.title,
            t.status.value,
            phase_info(t),
            t.priority.value,
            t.assignee,
        )

    console.print(table)
    console.print(f"[dim]{format_task_stats(get_task_stats(tasks))}[/dim]")


@task.command("show")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def task_show(task_id: str, as_json: bool) -> None:
    """Show a task, including archived ones."""
    wf = get_workflow()

    with workflow_errors():
        t = wf.get_task(task_id)

    if as_json:
        print(json.dumps(_task_json(t, wf.pointer.is_current(t.id)), indent=2))
        return

    console.print(f"[bold cyan]{t.id}[/bold cyan]: {t.title}")
    console.print(f"  Status:   {t.status.value}")
    console.print(f"  Phase:    {phase_info(t)}")
    console.print(f"  Dev type: {t.dev_type.value if t.dev_type else '-'}")
    console.print(f"  Priority: {t.priority.value}")
    console.print(f"  Created:  {t.created_at}")
    if t.completed_at:
        console.print(f"  Completed: {t.completed_at}")
    if t.next_action:
        console.print("  Pipeline:")
        for index, step in enumerate(t.next_action):
            pointer = "→" if index == t.current_phase else " "
            console.print(f"    {pointer} {step.phase}: {step.action.value}")
    if t.subtasks:
        console.print(f"  Subtasks: {', '.join(t.subtasks)}")


@task.command("pipeline")
@click.argument("task_id")
@click.argument("steps", nargs=-1, required=True)
def task_pipeline(task_id: str, steps: tuple[str, ...]) -> None:
    """Set the phase pipeline as PHASE:ACTION pairs.

    Actions: implement, check, debug, finish, create-pr. Phase numbers must
    not decrease; repeating a number runs actions side by side.

    Example:
        trellis task pipeline login-fix 0:implement 1:check 1:debug 2:finish
    """
    wf = get_workflow()

    with workflow_errors():
        pairs = [parse_step(step) for step in steps]
        t = wf.set_pipeline(task_id, pairs)

    console.print(f"[green]✓ Pipeline for {t.id}: {', '.join(f'{s.phase}:{s.action.value}' for s in t.next_action)}[/green]")


@task.command("start")
@click.argument("task_id")
@click.option("--force", is_flag=True, help="Switch even if another task is current")
def task_start(task_id: str, force: bool) -> None:
    """Set a task as the current task (planning -> in_progress)."""
    wf = get_workflow()

    with workflow_errors():
        t = wf.start_task(task_id, force=force)

    console.print(f"[green]✓ Current task set to: {t.id}[/green]")
    console.print("[dim]Hooks will now inject context from this task's buckets.[/dim]")


@task.command("finish")
@click.argument("task_id", required=False)
def task_finish(task_id: Optional[str]) -> None:
    """Clear the current task without changing its status."""
    wf = get_workflow()

    with workflow_errors():
        cleared = wf.finish_task(task_id)

    if cleared:
        console.print(f"[green]✓ Cleared current task (was: {cleared})[/green]")
    else:
        console.print("[yellow]No current task set[/yellow]")


@task.command("current")
def task_current() -> None:
    """Show the current task."""
    wf = get_workflow()
    with workflow_errors():
        current = wf.current_task()
    if current is None:
        console.print("[yellow]No current task set[/yellow]")
        return
    console.print(f"[cyan]{current.id}[/cyan] ({current.status.value}, phase {phase_info(current)})")


@task.command("advance")
@click.argument("task_id")
def task_advance(task_id: str) -> None:
    """Move a task to its next pipeline step."""
    wf = get_workflow()

    with workflow_errors():
        t = wf.advance_phase(task_id)

    console.print(f"[green]✓ {t.id} now at phase {phase_info(t)}[/green]")


@task.command("complete")
@click.argument("task_id")
def task_complete(task_id: str) -> None:
    """Mark a task completed (must be on its last pipeline step)."""
    wf = get_workflow()

    with workflow_errors():
        t = wf.complete_task(task_id)

    console.print(f"[green]✓ Completed {t.id} at {t.completed_at}[/green]")


@task.command("archive")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def task_archive(task_id: str, as_json: bool) -> None:
    """Move a completed task to .trellis/tasks/archive/YYYY-MM/."""
    wf = get_workflow()

    with workflow_errors():
        t = wf.archive_task(task_id)

    archived_to = wf.store.relative_path(t.dir)
    if as_json:
        print(json.dumps({"archivedTo": archived_to}))
        return
    console.print(f"[green]✓ Archived {t.id} -> {archived_to}/[/green]")


@task.command("archived")
@click.argument("month", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def task_archived(month: Optional[str], as_json: bool) -> None:
    """List archived tasks, optionally for one YYYY-MM month."""
    wf = get_workflow()
    archived = wf.list_archived(month)

    if as_json:
        print(json.dumps([{"month": m, "dirName": t.dir_name, "id": t.id} for m, t in archived], indent=2))
        return

    if not archived:
        console.print("[yellow]No archived tasks[/yellow]")
        return

    by_month: dict[str, list[str]] = {}
    for m, t in archived:
        by_month.setdefault(m, []).append(t.dir_name or t.id)

    for m in sorted(by_month, reverse=True):
        console.print(f"[bold][{m}][/bold] {len(by_month[m])} task(s)")
        for dir_name in by_month[m]:
            console.print(f"  - {dir_name}/")

