"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
All settings classes automatically load from environment variables with support for
multiple alias names (e.g., MODEL_CHAT and MODEL_CHAT_ID both work).

Example:
    from conductorAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    timeout = settings.governance.tool_timeout_seconds
    dirs = settings.capabilities.provider_directories()
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


def _settings_config() -> SettingsConfigDict:
    return SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ModelSettings(BaseSettings):
    """Model identifiers and credentials.

    - MODEL_CHAT / MODEL_CHAT_ID: the conversational model used by the turn loop
      and by plan steps
    - MODEL_PLANNER / MODEL_PLANNER_ID: optional model for plan generation,
      falls back to the chat model
    """

    chat: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT", "MODEL_CHAT_ID", "chat"),
    )
    chat_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_API_KEY", "OPENAI_API_KEY", "chat_api_key"),
    )
    chat_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_CHAT_URL", "MODEL_CHAT_BASE_URL", "chat_base_url"),
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices("MODEL_TEMPERATURE", "temperature"),
    )

    planner: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_PLANNER", "MODEL_PLANNER_ID", "planner"),
    )
    planner_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_PLANNER_API_KEY", "planner_api_key"),
    )
    planner_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_PLANNER_URL", "MODEL_PLANNER_BASE_URL", "planner_base_url"),
    )

    model_config = _settings_config()


class GovernanceSettings(BaseSettings):
    """Runtime governance and control settings.

    - tool_timeout_seconds: wall-clock limit for one capability handler (default: 120)
    - approval_timeout_seconds: gateway wait on an approval gate (default: 120)
    - channel_approval_timeout_seconds: channel-side auto-deny delay (default: 300)
    - step_max_iterations: model iterations inside one tool step (default: 3)
    - turn_max_iterations: model iterations inside one turn (default: 8)
    - dependency_context_max_chars: per-dependency result excerpt (default: 4000)
    - dependency_policy: best_effort keeps running dependents of failed steps,
      fail_fast marks them failed without dispatch
    - parallel_waves: run the steps of one ready wave concurrently
    - expose_tool_search: offer find_tools/use_tool next to plan_actions
    """

    tool_timeout_seconds: float = Field(
        default=120.0, gt=0, validation_alias=AliasChoices("TOOL_TIMEOUT_SECONDS", "tool_timeout_seconds")
    )
    approval_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        validation_alias=AliasChoices("APPROVAL_TIMEOUT_SECONDS", "approval_timeout_seconds"),
    )
    channel_approval_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias=AliasChoices("CHANNEL_APPROVAL_TIMEOUT_SECONDS", "channel_approval_timeout_seconds"),
    )
    step_max_iterations: int = Field(
        default=3, ge=1, le=20, validation_alias=AliasChoices("STEP_MAX_ITERATIONS", "step_max_iterations")
    )
    turn_max_iterations: int = Field(
        default=8, ge=1, le=50, validation_alias=AliasChoices("TURN_MAX_ITERATIONS", "turn_max_iterations")
    )
    dependency_context_max_chars: int = Field(
        default=4000,
        ge=100,
        validation_alias=AliasChoices("DEPENDENCY_CONTEXT_MAX_CHARS", "dependency_context_max_chars"),
    )
    dependency_policy: Literal["best_effort", "fail_fast"] = Field(
        default="best_effort", validation_alias=AliasChoices("DEPENDENCY_POLICY", "dependency_policy")
    )
    parallel_waves: bool = Field(default=False, validation_alias=AliasChoices("PARALLEL_WAVES", "parallel_waves"))
    expose_tool_search: bool = Field(
        default=True, validation_alias=AliasChoices("EXPOSE_TOOL_SEARCH", "expose_tool_search")
    )
    cost_lookup_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        validation_alias=AliasChoices("COST_LOOKUP_TIMEOUT_SECONDS", "cost_lookup_timeout_seconds"),
    )

    model_config = _settings_config()


class CapabilitySettings(BaseSettings):
    """Where capability providers and their stored configuration live.

    - PROVIDER_DIRS: comma separated directories scanned for provider folders
    - PROVIDER_CONFIG_PATH: YAML file holding enablement, credentials and auto-allow flags
    """

    provider_dirs: str = Field(default="providers", validation_alias=AliasChoices("PROVIDER_DIRS", "provider_dirs"))
    config_path: str = Field(
        default="config/providers.yaml",
        validation_alias=AliasChoices("PROVIDER_CONFIG_PATH", "config_path"),
    )

    model_config = _settings_config()

    def provider_directories(self) -> List[Path]:
        return [Path(item.strip()) for item in self.provider_dirs.split(",") if item.strip()]


class ObservabilitySettings(BaseSettings):
    """Logging configuration.

    - LOG_LEVEL: level of the console handler (file handler always records DEBUG)
    - LOG_DIR: directory for timestamped log files
    - LOG_PROMPT_MAX_LENGTH: preview length for logged prompts and results
    """

    log_level: str = Field(default="WARNING", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    log_dir: str = Field(default="logs", validation_alias=AliasChoices("LOG_DIR", "log_dir"))
    log_prompt_max_length: int = Field(
        default=500,
        ge=100,
        le=5000,
        validation_alias=AliasChoices("LOG_PROMPT_MAX_LENGTH", "log_prompt_max_length"),
    )

    model_config = _settings_config()


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure containing four nested settings groups:
    - models: Model identifiers and API credentials (ModelSettings)
    - governance: Timeouts, iteration limits and plan policies (GovernanceSettings)
    - capabilities: Provider discovery and stored configuration (CapabilitySettings)
    - observability: Logging (ObservabilitySettings)

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", validation_alias=AliasChoices("APP_ENV", "environment"))
    persona_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("PERSONA_PATH", "persona_path"))
    models: ModelSettings = Field(default_factory=ModelSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)
    capabilities: CapabilitySettings = Field(default_factory=CapabilitySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()
