"""Model wiring from environment-derived settings.

Builds ChatOpenAI clients (any OpenAI-compatible endpoint via base_url) for the
chat slot and the optional planner slot. A slot without a model id is simply
not configured; a slot with a model id but no API key is a configuration error.
"""

from __future__ import annotations

from typing import Dict, Optional, TypedDict

from langchain_openai import ChatOpenAI

from conductorAgent.config.settings import ModelSettings
from conductorAgent.utils.error_handler import ConfigurationError


class ModelConfig(TypedDict):
    id: str
    api_key: Optional[str]
    base_url: Optional[str]
    temperature: float


def resolve_model_configs(settings: ModelSettings) -> Dict[str, ModelConfig]:
    """Normalized configs for the configured slots ("chat", "planner")."""
    configs: Dict[str, ModelConfig] = {}
    if settings.chat:
        configs["chat"] = {
            "id": settings.chat,
            "api_key": settings.chat_api_key,
            "base_url": settings.chat_base_url,
            "temperature": settings.temperature,
        }
    if settings.planner:
        configs["planner"] = {
            "id": settings.planner,
            "api_key": settings.planner_api_key or settings.chat_api_key,
            "base_url": settings.planner_base_url or settings.chat_base_url,
            "temperature": 0.0,
        }
    return configs


def _chat_kwargs(config: ModelConfig) -> Dict[str, object]:
    if not config["api_key"]:
        raise ConfigurationError(
            f"Missing API key for model {config['id']}",
            user_message=f"Missing API key for model {config['id']}. Set MODEL_CHAT_API_KEY in .env.",
        )
    kwargs: Dict[str, object] = {
        "model": config["id"],
        "api_key": config["api_key"],
        "temperature": config["temperature"],
        "stream_usage": True,
    }
    if config["base_url"]:
        kwargs["base_url"] = config["base_url"]
    return kwargs


def build_chat_model(settings: ModelSettings, slot: str = "chat") -> Optional[ChatOpenAI]:
    """ChatOpenAI for a slot, or None when the slot has no model id.

    The planner slot falls back to the chat model.
    """
    configs = resolve_model_configs(settings)
    config = configs.get(slot)
    if config is None and slot == "planner":
        config = configs.get("chat")
    if config is None:
        return None
    return ChatOpenAI(**_chat_kwargs(config))
