"""CLI for Trellis."""

import logging
from pathlib import Path

import click
from rich.logging import RichHandler

from trellis import __version__
from trellis.api import Workflow
from trellis.cli._utils import console


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool) -> None:
    """Trellis: task workflow for AI-assisted development

    Track tasks through their phase pipeline and feed each agent the
    context its current action needs.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


@main.command("init")
def init() -> None:
    """Create the .trellis/tasks layout in the current directory."""
    wf = Workflow(Path.cwd())
    tasks_path = wf.init()
    console.print(f"[green]✓ Initialized {wf.store.relative_path(tasks_path)}[/green]")


# Import and register command modules
from trellis.cli import context_cmd
from trellis.cli import hook
from trellis.cli import task

main.add_command(task.task)
main.add_command(context_cmd.context)
main.add_command(hook.hook)

__all__ = ["main"]
