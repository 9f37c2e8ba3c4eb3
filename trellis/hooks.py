"""Context injection for agent hooks.

Agent platforms call a hook before each agent turn. The hook asks which task
is current, looks up the context bucket for the action the agent is about to
perform, and turns each entry into text the agent receives up front:

- file entries are inlined verbatim,
- directory entries inline the markdown files directly inside them,
- missing paths become a short note so the agent knows context is absent.

With no current task the hook injects nothing.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from trellis.context import ContextEntry
from trellis.pipeline import Action, current_action, parse_action

if TYPE_CHECKING:
    from trellis.api import Workflow

log = logging.getLogger("trellis.hooks")

# Files larger than this are truncated when inlined
MAX_FILE_CHARS = 50_000


def _read_limited(path: Path) -> str:
    text = path.read_text(errors="replace")
    if len(text) > MAX_FILE_CHARS:
        return text[:MAX_FILE_CHARS] + f"\n... (truncated, {len(text) - MAX_FILE_CHARS} more characters)\n"
    return text


def render_entry(entry: ContextEntry, repo_root: Path) -> str:
    """Render one context entry as a markdown block."""
    full_path = repo_root / entry.file
    header = f"## {entry.file}\n\n_{entry.reason}_\n\n"

    if entry.is_directory:
        if not full_path.is_dir():
            return header + "(directory not found)\n"
        docs = sorted(p for p in full_path.iterdir() if p.is_file() and p.suffix == ".md")
        if not docs:
            return header + "(no markdown files in directory)\n"
        parts = [header]
        for doc in docs:
            parts.append(f"### {doc.name}\n\n{_read_limited(doc)}\n")
        return "".join(parts)

    if not full_path.is_file():
        return header + "(file not found)\n"
    return header + _read_limited(full_path) + "\n"


def build_context(
    workflow: "Workflow",
    action: "str | Action | None" = None,
) -> str:
    """Build the injected context for the current task.

    Args:
        workflow: Workflow whose pointer selects the task
        action: Action the agent is about to perform (default: the task's
            current pipeline action)

    Returns:
        Markdown text, or "" when there is nothing to inject

    Raises:
        UnknownActionError: If action is not a pipeline action
    """
    parsed: Optional[Action] = parse_action(action) if action is not None else None

    task = workflow.current_task()
    if task is None:
        log.debug("No current task, skipping context injection")
        return ""

    if parsed is None:
        parsed = current_action(task)
        if parsed is None:
            log.debug("Task %s has no current pipeline action", task.id)
            return ""

    entries = workflow.resolve_context(task.id, parsed)
    if not entries:
        return ""

    blocks = [f"# Context for {task.id} ({parsed.value})\n\n"]
    blocks.extend(render_entry(entry, workflow.repo_root) for entry in entries)
    log.debug("Injected %d context entries for %s/%s", len(entries), task.id, parsed.value)
    return "\n".join(blocks)
