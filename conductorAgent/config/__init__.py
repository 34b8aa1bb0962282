"""Configuration package."""

from .settings import (
    CapabilitySettings,
    GovernanceSettings,
    ModelSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "CapabilitySettings",
    "GovernanceSettings",
    "ModelSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
