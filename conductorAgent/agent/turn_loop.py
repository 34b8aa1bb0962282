"""Turn loop: one conversational exchange driven by a model stream.

Text fragments, capability calls and capability results are forwarded to the
caller's callbacks in the order the stream produces them. A turn ends with
exactly one of ``on_end(text, usage)`` or ``on_error(message)``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import BaseMessage, HumanMessage

from conductorAgent.agent.stream import (
    ErrorEvent,
    FinishEvent,
    StreamSource,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
)
from conductorAgent.agent.usage import CostLookup, TokenUsage
from conductorAgent.tools.toolset import Capability
from conductorAgent.utils.callbacks import emit
from conductorAgent.utils.error_handler import (
    ConfigurationError,
    ModelInvocationError,
    TurnCancelledError,
    handle_model_error,
)
from conductorAgent.utils.logging_utils import log_agent_response, log_error, log_user_message

LOGGER = logging.getLogger(__name__)

NO_MODEL_MESSAGE = "No active model configured. Please configure a chat model (MODEL_CHAT) and its API key."
CANCELLED_MESSAGE = "Stream cancelled"
EMPTY_RESPONSE_MESSAGE = "The model returned an empty response."
EMPTY_AFTER_RETRY_MESSAGE = "The model returned an empty response, even after retrying without tools."
EMPTY_AFTER_TOOLS_MESSAGE = "Tools were called but the model produced no response text."


@dataclass
class TurnCallbacks:
    """Caller-facing observers; each may be sync or async."""

    on_chunk: Optional[Callable[[str], Any]] = None
    on_tool_call: Optional[Callable[[str, str, Dict[str, Any]], Any]] = None
    on_tool_result: Optional[Callable[[str, str, Any], Any]] = None
    on_plan_step: Optional[Callable[[str, str, str], Any]] = None
    on_end: Optional[Callable[[str, TokenUsage], Any]] = None
    on_error: Optional[Callable[[str], Any]] = None


@dataclass
class TurnResult:
    status: str
    text: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[str] = None
    tool_calls: int = 0
    finish_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "complete"


@dataclass
class _Attempt:
    text: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    tool_calls: int = 0
    finish_reason: Optional[str] = None


class TurnLoop:
    """Runs turns against a stream source.

    Args:
        stream_source: the model stream, or None when no model is configured
        cost_lookup: optional best-effort ``(model_id, usage) -> cost``
        cost_lookup_timeout: bound on the cost lookup in seconds
        max_iterations: model iterations per attempt
    """

    def __init__(
        self,
        stream_source: Optional[StreamSource],
        *,
        cost_lookup: Optional[CostLookup] = None,
        cost_lookup_timeout: float = 2.0,
        max_iterations: Optional[int] = None,
    ) -> None:
        self.stream_source = stream_source
        self.cost_lookup = cost_lookup
        self.cost_lookup_timeout = cost_lookup_timeout
        self.max_iterations = max_iterations

    async def run(
        self,
        history: Sequence[BaseMessage],
        user_text: str,
        *,
        system_prompt: str,
        capabilities: Sequence[Capability] = (),
        callbacks: Optional[TurnCallbacks] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        callbacks = callbacks or TurnCallbacks()
        log_user_message(LOGGER, user_text)

        if self.stream_source is None:
            LOGGER.error("Turn rejected: no model configured")
            return await self._fail(callbacks, NO_MODEL_MESSAGE)

        messages: List[BaseMessage] = [*history, HumanMessage(content=user_text)]
        try:
            attempt = await self._attempt(system_prompt, messages, capabilities, callbacks, cancel_event)
            usage = attempt.usage
            tool_calls = attempt.tool_calls

            if not attempt.text.strip() and capabilities:
                LOGGER.warning("Empty response with tools offered, retrying without tools")
                retry = await self._attempt(system_prompt, messages, (), callbacks, cancel_event)
                usage = usage + retry.usage
                tool_calls += retry.tool_calls
                attempt = retry

            if not attempt.text.strip():
                if tool_calls:
                    message = EMPTY_AFTER_TOOLS_MESSAGE
                elif capabilities:
                    message = EMPTY_AFTER_RETRY_MESSAGE
                else:
                    message = EMPTY_RESPONSE_MESSAGE
                LOGGER.warning(f"Turn ended without text: {message}")
                return await self._fail(callbacks, message, usage=usage, tool_calls=tool_calls)

        except TurnCancelledError:
            LOGGER.info("Turn cancelled by caller")
            return await self._fail(callbacks, CANCELLED_MESSAGE, status="cancelled")
        except ConfigurationError as e:
            log_error(LOGGER, e, "turn configuration")
            return await self._fail(callbacks, e.user_message)
        except Exception as e:
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info(f"Turn cancelled while failing: {e}")
                return await self._fail(callbacks, CANCELLED_MESSAGE, status="cancelled")
            log_error(LOGGER, e, "turn stream")
            return await self._fail(callbacks, handle_model_error(e))

        usage = await self._attach_cost(usage)
        log_agent_response(LOGGER, attempt.text)
        await emit(callbacks.on_end, attempt.text, usage)
        return TurnResult(
            status="complete",
            text=attempt.text,
            usage=usage,
            tool_calls=tool_calls,
            finish_reason=attempt.finish_reason,
        )

    async def _attempt(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        capabilities: Sequence[Capability],
        callbacks: TurnCallbacks,
        cancel_event: Optional[asyncio.Event],
    ) -> _Attempt:
        if cancel_event is not None and cancel_event.is_set():
            raise TurnCancelledError(CANCELLED_MESSAGE)

        consumer = asyncio.ensure_future(self._consume(system_prompt, messages, capabilities, callbacks))
        if cancel_event is None:
            return await consumer

        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({consumer, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            consumer.cancel()
            raise
        finally:
            waiter.cancel()

        if not consumer.done():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
            raise TurnCancelledError(CANCELLED_MESSAGE)
        return consumer.result()

    async def _consume(
        self,
        system_prompt: str,
        messages: Sequence[BaseMessage],
        capabilities: Sequence[Capability],
        callbacks: TurnCallbacks,
    ) -> _Attempt:
        attempt = _Attempt()
        parts: List[str] = []
        async for event in self.stream_source.stream(
            system_prompt,
            messages,
            capabilities,
            max_iterations=self.max_iterations,
        ):
            if isinstance(event, TextDelta):
                parts.append(event.text)
                await emit(callbacks.on_chunk, event.text)
            elif isinstance(event, ToolCallEvent):
                attempt.tool_calls += 1
                await emit(callbacks.on_tool_call, event.call_id, event.name, event.arguments)
            elif isinstance(event, ToolResultEvent):
                await emit(callbacks.on_tool_result, event.call_id, event.name, event.result)
            elif isinstance(event, FinishEvent):
                attempt.usage = attempt.usage + event.usage
                attempt.finish_reason = event.reason
            elif isinstance(event, ErrorEvent):
                raise ModelInvocationError(event.message)
        attempt.text = "".join(parts)
        return attempt

    async def _attach_cost(self, usage: TokenUsage) -> TokenUsage:
        """Best effort: a slow or failing lookup leaves the cost unset."""
        model_id = getattr(self.stream_source, "model_id", None)
        if self.cost_lookup is None or not model_id:
            return usage
        try:
            cost = await asyncio.wait_for(self.cost_lookup(model_id, usage), timeout=self.cost_lookup_timeout)
        except Exception as e:
            LOGGER.debug(f"Cost lookup failed for {model_id}: {type(e).__name__}: {e}")
            return usage
        return usage.with_cost(cost) if cost is not None else usage

    async def _fail(
        self,
        callbacks: TurnCallbacks,
        message: str,
        *,
        status: str = "error",
        usage: Optional[TokenUsage] = None,
        tool_calls: int = 0,
    ) -> TurnResult:
        await emit(callbacks.on_error, message)
        return TurnResult(status=status, error=message, usage=usage or TokenUsage(), tool_calls=tool_calls)
