"""Capability execution: the gateway and the capability sets offered to models."""

from .gateway import DENIED_MESSAGE, ToolGateway, denied_result, error_result
from .toolset import (
    Capability,
    ModuleToolset,
    build_direct_capabilities,
    build_module_toolset,
    build_plan_capability,
    build_search_capabilities,
    registry_capability,
)

__all__ = [
    "Capability",
    "DENIED_MESSAGE",
    "ModuleToolset",
    "ToolGateway",
    "build_direct_capabilities",
    "build_module_toolset",
    "build_plan_capability",
    "build_search_capabilities",
    "denied_result",
    "error_result",
    "registry_capability",
]
