"""Project and package path resolution that works regardless of working directory."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=1)
def get_package_root() -> Path:
    """Absolute path of the installed ``conductorAgent`` package directory."""
    # project_root.py -> config/ -> conductorAgent/
    return Path(__file__).resolve().parent.parent


def resolve_package_path(relative_path: str | Path) -> Path:
    """Resolve a path shipped inside the package (templates, defaults).

    Example:
        >>> resolve_package_path("config/prompt_templates/planner.jinja2")
    """
    return get_package_root() / relative_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a user-facing path (provider dirs, config files, logs).

    Absolute paths are returned unchanged; relative ones are anchored at the
    current working directory, where ``.env`` is also read from.
    """
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return candidate
    return Path.cwd() / candidate


__all__ = ["get_package_root", "resolve_package_path", "resolve_project_path"]
