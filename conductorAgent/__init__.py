"""Conductor agent runtime: turn loop, capability registry, plan executor and tool gateway."""

__all__ = ["__version__"]

__version__ = "0.1.0"
