"""Context commands (init, add, list, validate, resolve)."""

import json
import sys

import click

from trellis.cli._utils import console, get_workflow, workflow_errors
from trellis.pipeline import ACTION_NAMES


@click.group()
def context() -> None:
    """Manage per-action context buckets of a task.

    Each bucket lists the files an agent must read before performing that
    action (implement, check, debug, finish, create-pr).
    """
    pass


@context.command("init")
@click.argument("task_id")
@click.argument("dev_type")
def context_init(task_id: str, dev_type: str) -> None:
    """Seed the implement, check and debug buckets for a dev type.

    DEV_TYPE is one of: backend, frontend, fullstack, test, docs.
    """
    wf = get_workflow()

    with workflow_errors():
        buckets = wf.init_context(task_id, dev_type)

    console.print(f"[blue]Initialized context for {task_id} ({dev_type})[/blue]")
    for action, entries in buckets.items():
        console.print(f"  [cyan]{action.value}.jsonl[/cyan]: [green]✓[/green] {len(entries)} entries")


@context.command("add")
@click.argument("task_id")
@click.argument("action", type=click.Choice(ACTION_NAMES))
@click.argument("path")
@click.argument("reason", required=False, default="Added manually")
def context_add(task_id: str, action: str, path: str, reason: str) -> None:
    """Add PATH to a bucket (re-adding a path updates its reason)."""
    wf = get_workflow()

    with workflow_errors():
        entry = wf.add_context(task_id, action, path, reason)

    kind = "directory" if entry.is_directory else "file"
    console.print(f"[green]✓ {action}: {kind} {entry.file}[/green]")


@context.command("list")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def context_list(task_id: str, as_json: bool) -> None:
    """List every non-empty bucket of a task."""
    wf = get_workflow()

    with workflow_errors():
        buckets = wf.index.list_context(task_id)

    if as_json:
        print(json.dumps(
            [
                {"file": f"{action.value}.jsonl", "entries": [e.model_dump(mode="json", exclude_none=True) for e in entries]}
                for action, entries in buckets.items()
            ],
            indent=2,
        ))
        return

    if not buckets:
        console.print("  (no context files found)")
        return

    for action, entries in buckets.items():
        console.print(f"[cyan][{action.value}.jsonl][/cyan]")
        for count, entry in enumerate(entries, start=1):
            marker = "[DIR] " if entry.is_directory else ""
            console.print(f"  [green]{count}.[/green] {marker}{entry.file}")
            console.print(f"     [yellow]→[/yellow] {entry.reason}")
        console.print("")


@context.command("validate")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def context_validate(task_id: str, as_json: bool) -> None:
    """Check that every bucket entry parses and points at an existing path."""
    wf = get_workflow()

    with workflow_errors():
        reports = wf.index.validate(task_id)

    total_errors = sum(len(r.errors) for r in reports)

    if as_json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for report in reports:
            name = f"{report.action.value}.jsonl"
            if report.ok:
                console.print(f"  [green]{name}[/green]: ✓ ({report.entry_count} entries)")
            else:
                console.print(f"  [red]{name}[/red]: ✗ ({len(report.errors)} errors)")
                for error in report.errors:
                    console.print(f"    [red]{error}[/red]")

        if total_errors == 0:
            console.print("[green]✓ All validations passed[/green]")
        else:
            console.print(f"[red]✗ Validation failed ({total_errors} errors)[/red]")

    if total_errors:
        sys.exit(1)


@context.command("resolve")
@click.argument("task_id")
@click.argument("action", type=click.Choice(ACTION_NAMES))
def context_resolve(task_id: str, action: str) -> None:
    """Print a bucket's entries as JSON lines, in presentation order."""
    wf = get_workflow()

    with workflow_errors():
        entries = wf.resolve_context(task_id, action)

    for entry in entries:
        print(entry.to_line())

