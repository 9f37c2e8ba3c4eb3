"""Task identifier formatting and parsing.

This module is the single source of truth for how task slugs map onto
directory names on disk.

Task ids are slugs (e.g. "login-fix"). Active task directories are prefixed
with the creation date ("01-21-login-fix") so a plain directory listing sorts
chronologically; archived tasks are grouped under a "YYYY-MM" directory.
"""

import re
from datetime import datetime
from typing import Optional

_DIR_NAME_RE = re.compile(r"^(\d{2})-(\d{2})-(.+)$")


def slugify(text: str) -> str:
    """Convert a title to a task slug.

    Only ASCII letters and digits survive; everything else collapses to a
    single hyphen.

    Examples:
        "Fix login bug!" -> "fix-login-bug"
        "  API v2 / auth " -> "api-v2-auth"
    """
    slug = text.lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


def validate_slug(slug: str) -> str:
    """Validate a caller-provided slug.

    Raises:
        ValueError: If the slug is empty or contains characters slugify would strip
    """
    if not slug or slugify(slug) != slug:
        raise ValueError(f"Invalid task slug: {slug!r}")
    return slug


def date_prefix(now: Optional[datetime] = None) -> str:
    """Format the MM-DD prefix used for task directory names."""
    now = now or datetime.now()
    return f"{now.month:02d}-{now.day:02d}"


def task_dir_name(slug: str, now: Optional[datetime] = None) -> str:
    """Get the directory name for a new task (e.g. "01-21-login-fix")."""
    return f"{date_prefix(now)}-{slug}"


def parse_task_dir_name(dir_name: str) -> Optional[tuple[str, str, str]]:
    """Split a task directory name into (month, day, slug).

    Returns:
        Tuple of (month, day, slug), or None if the name has no date prefix
    """
    match = _DIR_NAME_RE.match(dir_name)
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def archive_month(now: Optional[datetime] = None) -> str:
    """Get the archive bucket name for a moment in time (e.g. "2026-01")."""
    now = now or datetime.now()
    return f"{now.year}-{now.month:02d}"


def dir_matches_slug(dir_name: str, slug: str) -> bool:
    """Check whether a task directory name belongs to a slug."""
    return dir_name == slug or dir_name.endswith(f"-{slug}")
