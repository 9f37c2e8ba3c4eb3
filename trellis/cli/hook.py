"""Hook commands called by agent platforms before each agent turn."""

from typing import Optional

import click

from trellis.cli._utils import get_workflow, workflow_errors
from trellis.hooks import build_context
from trellis.pipeline import ACTION_NAMES


@click.group()
def hook() -> None:
    """Commands meant to be called from agent hook scripts."""
    pass


@hook.command("inject")
@click.argument("action", type=click.Choice(ACTION_NAMES), required=False)
def hook_inject(action: Optional[str]) -> None:
    """Print the context for ACTION of the current task.

    Without ACTION the current task's pipeline action is used. Prints
    nothing when no task is current.
    """
    wf = get_workflow()

    with workflow_errors():
        text = build_context(wf, action)

    if text:
        # Raw print: hook output is consumed verbatim by the agent platform
        print(text)
