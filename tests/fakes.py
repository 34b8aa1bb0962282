"""Test doubles: a scripted LangChain chat model, a scripted stream source and sample providers."""

import asyncio
import json
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import Field

from conductorAgent.capabilities.config_store import InMemoryConfigStore
from conductorAgent.capabilities.loader import ProviderLoader
from conductorAgent.capabilities.manifest import LoadedProvider, ProviderManifest
from conductorAgent.config.settings import GovernanceSettings, ModelSettings, Settings
from conductorAgent.runtime.app import build_application


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays queued responses.

    Each queued item is an ``AIMessage``, a plain string, or a callable taking the
    message list and returning one of those. Every invocation is recorded in ``calls``.
    Streaming yields the text word by word, then one chunk with tool calls and usage.
    """

    responses: List[Any] = Field(default_factory=list)
    calls: List[List[BaseMessage]] = Field(default_factory=list)
    bound_tools: List[List[str]] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def _next(self, messages: List[BaseMessage]) -> AIMessage:
        self.calls.append(list(messages))
        if not self.responses:
            return AIMessage(content="")
        item = self.responses.pop(0)
        if callable(item):
            item = item(messages)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            item = AIMessage(content=item)
        return item

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=self._next(messages))])

    def _stream(self, messages, stop=None, run_manager=None, **kwargs) -> Iterator[ChatGenerationChunk]:
        message = self._next(messages)
        text = message.content if isinstance(message.content, str) else ""
        for piece in re.findall(r"\S+\s*", text):
            yield ChatGenerationChunk(message=AIMessageChunk(content=piece))

        tool_call_chunks = [
            {
                "name": call["name"],
                "args": json.dumps(call["args"]),
                "id": call["id"],
                "index": index,
                "type": "tool_call_chunk",
            }
            for index, call in enumerate(message.tool_calls)
        ]
        yield ChatGenerationChunk(
            message=AIMessageChunk(
                content="",
                tool_call_chunks=tool_call_chunks,
                usage_metadata=message.usage_metadata,
                response_metadata=message.response_metadata,
            )
        )

    def bind_tools(self, tools, **kwargs):
        formatted = [convert_to_openai_tool(tool) for tool in tools]
        self.bound_tools.append([tool["function"]["name"] for tool in formatted])
        return self.bind(tools=formatted, **kwargs)


def tool_call_message(name: str, args: Dict[str, Any], call_id: str = "call_1", content: str = "", usage=None) -> AIMessage:
    return AIMessage(
        content=content,
        tool_calls=[{"name": name, "args": args, "id": call_id}],
        usage_metadata=usage,
    )


def usage(input_tokens: int, output_tokens: int) -> Dict[str, int]:
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": input_tokens + output_tokens,
    }


class ScriptedStreamSource:
    """Stream source replaying one event script per ``stream()`` call.

    A float inside a script sleeps that long; an exception is raised in place.
    """

    def __init__(self, scripts: Sequence[Sequence[Any]], model_id: Optional[str] = "gpt-4o-mini") -> None:
        self.scripts = [list(script) for script in scripts]
        self.model_id = model_id
        self.calls: List[Dict[str, Any]] = []

    async def stream(self, system_prompt, messages, capabilities=(), *, max_iterations=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "capabilities": [cap.name for cap in capabilities],
                "max_iterations": max_iterations,
            }
        )
        script = self.scripts.pop(0) if self.scripts else []
        for event in script:
            if isinstance(event, Exception):
                raise event
            if isinstance(event, float):
                await asyncio.sleep(event)
                continue
            yield event


def echo_handler(provider_id: str, function_name: str):
    def handler(args, credentials):
        return {"provider": provider_id, "function": function_name, "args": args}

    return handler


def make_provider(manifest: Dict[str, Any], handlers: Optional[Dict[str, Any]] = None, prompt: Optional[str] = None) -> LoadedProvider:
    """LoadedProvider from a manifest dict; functions without a handler get an echo handler."""
    parsed = ProviderManifest.model_validate(manifest)
    resolved = {fn.name: echo_handler(parsed.id, fn.name) for fn in parsed.functions}
    resolved.update(handlers or {})
    return LoadedProvider(manifest=parsed, handlers=resolved, prompt=prompt)


def _string(description: str) -> Dict[str, str]:
    return {"type": "string", "description": description}


HASS_MANIFEST = {
    "id": "hass",
    "name": "Home Assistant",
    "description": "Control smart home devices",
    "category": "smart_home",
    "credentials": [{"name": "api_token", "label": "Long-lived token"}],
    "functions": [
        {
            "name": "turn_on_light",
            "description": "Turn on a light",
            "parameters": {
                "type": "object",
                "properties": {
                    "entity_id": _string("Light entity"),
                    "brightness": {"type": "integer", "description": "Brightness 0-255"},
                },
                "required": ["entity_id"],
            },
        },
        {
            "name": "get_state",
            "description": "Read the state of an entity",
            "parameters": {
                "type": "object",
                "properties": {"entity_id": _string("Entity")},
                "required": ["entity_id"],
            },
        },
    ],
}

GOOGLE_MANIFEST = {
    "id": "google",
    "name": "Google",
    "description": "Mail and calendar",
    "category": "productivity",
    "oauth": True,
    "modules": [
        {"id": "gmail", "name": "Gmail", "description": "Send and search email", "functions": ["send_email", "search_email"]},
        {"id": "calendar", "name": "Calendar", "description": "Calendar events", "functions": ["list_events"]},
        {"id": "archive", "name": "Archive", "description": "Not implemented yet", "functions": ["archive_email"]},
    ],
    "functions": [
        {
            "name": "send_email",
            "description": "Send an email message",
            "parameters": {
                "type": "object",
                "properties": {"to": _string("Recipient"), "subject": _string("Subject"), "body": _string("Body")},
                "required": ["to", "subject"],
            },
        },
        {
            "name": "search_email",
            "description": "Search the mailbox",
            "parameters": {"type": "object", "properties": {"query": _string("Search terms")}, "required": ["query"]},
        },
        {
            "name": "list_events",
            "description": "List calendar events for a day",
            "parameters": {"type": "object", "properties": {"day": _string("ISO date")}},
        },
    ],
}

DATETIME_MANIFEST = {
    "id": "datetime",
    "name": "Date & Time",
    "description": "Current date and time",
    "category": "utility",
    "direct": True,
    "default_enabled": True,
    "functions": [{"name": "now", "description": "Current date and time", "parameters": {"type": "object", "properties": {}}}],
}

WEATHER_MANIFEST = {
    "id": "weather",
    "name": "Weather",
    "description": "Forecasts",
    "category": "weather",
    "functions": [{"name": "forecast", "description": "Weather forecast", "parameters": {}}],
}


class UnreachableConfigStore(InMemoryConfigStore):
    """Store whose reads start raising once ``broken`` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.broken = False

    def get_provider(self, provider_id: str):
        if self.broken:
            raise OSError("config backend unreachable")
        return super().get_provider(provider_id)


def sample_providers() -> List[LoadedProvider]:
    return [
        make_provider(HASS_MANIFEST),
        make_provider(GOOGLE_MANIFEST, prompt="Always confirm the recipient address."),
        make_provider(DATETIME_MANIFEST, handlers={"now": lambda args, credentials: {"now": "2026-01-01T09:00:00"}}),
        make_provider(WEATHER_MANIFEST),
    ]


class RecordingPlanner:
    """Plan generator returning a fixed plan and recording what it was asked."""

    def __init__(self, steps):
        self.steps = list(steps)
        self.requests = []

    async def __call__(self, request, catalog_text):
        self.requests.append((request, catalog_text))
        return list(self.steps)


def build_test_runtime(model=None, planner=None, config_store=None, loader=None, **governance):
    """Runtime over the sample providers with injected model and planner."""
    if loader is None:
        loader = ProviderLoader()
        for provider in sample_providers():
            loader.register(provider)
    if config_store is None:
        config_store = InMemoryConfigStore()
        config_store.set_provider("hass", config={"api_token": "token-123"})
        config_store.set_provider("google", config={"refresh_token": "refresh-abc"}, allow_without_asking=True)

    settings = Settings(models=ModelSettings(chat=None, planner=None), governance=GovernanceSettings(**governance))
    return build_application(
        settings,
        chat_model=model,
        planner=planner,
        config_store=config_store,
        loader=loader,
    )
