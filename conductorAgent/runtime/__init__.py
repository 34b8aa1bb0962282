"""Runtime assembly."""

from .app import ConductorRuntime, build_application

__all__ = ["ConductorRuntime", "build_application"]
