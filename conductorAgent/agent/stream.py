"""Model stream events and the LangChain streaming adapter.

A stream source turns (system prompt, messages, capabilities) into an ordered
sequence of events. ``LangChainStreamSource`` drives any ``BaseChatModel``:
it streams one model iteration, executes the requested capability calls,
appends the results as ``ToolMessage``s and iterates until the model answers
without tool calls or the iteration bound is reached.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage

from conductorAgent.agent.usage import TokenUsage
from conductorAgent.tools.gateway import error_result
from conductorAgent.tools.toolset import Capability
from conductorAgent.utils.logging_utils import log_visible_tools
from conductorAgent.utils.message_utils import content_text, to_json_text

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 8


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallEvent:
    call_id: str
    name: str
    arguments: Dict[str, Any]


@dataclass(frozen=True)
class ToolResultEvent:
    call_id: str
    name: str
    result: Any


@dataclass(frozen=True)
class FinishEvent:
    reason: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class ErrorEvent:
    message: str


StreamEvent = Union[TextDelta, ToolCallEvent, ToolResultEvent, FinishEvent, ErrorEvent]


class StreamSource(Protocol):
    model_id: Optional[str]

    def stream(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        capabilities: Sequence[Capability] = (),
        *,
        max_iterations: Optional[int] = None,
    ) -> AsyncIterator[StreamEvent]:
        ...


class LangChainStreamSource:
    """Stream source backed by a LangChain chat model."""

    def __init__(
        self,
        model: BaseChatModel,
        *,
        model_id: Optional[str] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.model = model
        self.model_id = model_id or getattr(model, "model_name", None) or getattr(model, "model", None)
        self.max_iterations = max_iterations

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        capabilities: Sequence[Capability] = (),
        *,
        max_iterations: Optional[int] = None,
    ) -> AsyncIterator[StreamEvent]:
        limit = max_iterations or self.max_iterations
        conversation: List[BaseMessage] = [SystemMessage(content=system_prompt), *messages]
        by_name = {cap.name: cap for cap in capabilities}

        if capabilities:
            log_visible_tools(LOGGER, "stream", capabilities)
            runnable = self.model.bind_tools([cap.as_tool() for cap in capabilities])
        else:
            runnable = self.model

        usage = TokenUsage()
        for iteration in range(limit):
            aggregate = None
            async for chunk in runnable.astream(conversation):
                text = content_text(chunk.content)
                if text:
                    yield TextDelta(text)
                aggregate = chunk if aggregate is None else aggregate + chunk

            if aggregate is None:
                yield FinishEvent("stop", usage)
                return

            usage = usage + TokenUsage.from_metadata(getattr(aggregate, "usage_metadata", None))
            tool_calls = list(getattr(aggregate, "tool_calls", None) or [])
            if not tool_calls:
                reason = (aggregate.response_metadata or {}).get("finish_reason") or "stop"
                yield FinishEvent(reason, usage)
                return

            calls = [
                {"name": call["name"], "args": call.get("args") or {}, "id": call.get("id") or f"call_{uuid.uuid4().hex[:12]}"}
                for call in tool_calls
            ]
            conversation.append(AIMessage(content=aggregate.content, tool_calls=calls))

            for call in calls:
                yield ToolCallEvent(call["id"], call["name"], call["args"])
                capability = by_name.get(call["name"])
                if capability is None:
                    LOGGER.warning(f"Model requested unknown tool: {call['name']}")
                    result = error_result(f'Unknown tool "{call["name"]}"')
                else:
                    result = await capability.run(call["args"], call["id"])
                yield ToolResultEvent(call["id"], call["name"], result)
                conversation.append(ToolMessage(content=to_json_text(result), tool_call_id=call["id"], name=call["name"]))

            LOGGER.debug(f"Stream iteration {iteration + 1}/{limit} executed {len(calls)} tool call(s)")

        LOGGER.info(f"Stream stopped at the iteration limit ({limit})")
        yield FinishEvent("max_iterations", usage)
