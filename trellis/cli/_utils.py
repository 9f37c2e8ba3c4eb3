"""Shared utilities for CLI modules."""

import sys
from contextlib import contextmanager
from typing import Generator, NoReturn

import yaml
from filelock import Timeout
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from trellis.api import Workflow
from trellis.errors import TrellisError

# Shared Rich console instance for all CLI modules
console = Console()


def get_workflow() -> Workflow:
    """Open the workflow rooted at (or above) the current directory."""
    return Workflow.open()


def require_initialized(wf: Workflow) -> None:
    """Exit with an error unless `trellis init` has been run."""
    if not wf.store.workflow_path.is_dir():
        fail("Trellis not initialized. Run: trellis init")


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error: {escape(message)}[/red]")
    sys.exit(1)


@contextmanager
def workflow_errors() -> Generator[None, None, None]:
    """Turn workflow, record and filesystem errors into a red message and exit status 1."""
    try:
        yield
    except (TrellisError, ValidationError, ValueError) as e:
        fail(str(e))
    except Timeout as e:
        fail(f"{e} Another trellis command may be running.")
    except yaml.YAMLError as e:
        fail(f"Unreadable task record: {e}")
    except OSError as e:
        fail(str(e))


__all__ = [
    "console",
    "fail",
    "get_workflow",
    "require_initialized",
    "workflow_errors",
]
