"""Tests for the streaming adapter and the turn loop."""

import asyncio

import pytest
from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage
from pydantic import BaseModel

from conductorAgent.agent.stream import (
    ErrorEvent,
    FinishEvent,
    LangChainStreamSource,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
)
from conductorAgent.agent.turn_loop import (
    CANCELLED_MESSAGE,
    EMPTY_AFTER_RETRY_MESSAGE,
    EMPTY_AFTER_TOOLS_MESSAGE,
    EMPTY_RESPONSE_MESSAGE,
    NO_MODEL_MESSAGE,
    TurnCallbacks,
    TurnLoop,
)
from conductorAgent.agent.usage import TokenUsage
from conductorAgent.tools.toolset import Capability

from fakes import ScriptedChatModel, ScriptedStreamSource, tool_call_message, usage


class EchoArgs(BaseModel):
    text: str


async def _echo(arguments, call_id):
    return {"echo": arguments["text"]}


ECHO = Capability(name="echo", description="Echo text back", args_schema=EchoArgs, runner=_echo)


class Recorder:
    """Collects every callback in arrival order."""

    def __init__(self):
        self.events = []

    def callbacks(self):
        return TurnCallbacks(
            on_chunk=lambda text: self.events.append(("chunk", text)),
            on_tool_call=lambda call_id, name, args: self.events.append(("call", name, args)),
            on_tool_result=lambda call_id, name, result: self.events.append(("result", name, result)),
            on_end=lambda text, turn_usage: self.events.append(("end", text, turn_usage)),
            on_error=lambda message: self.events.append(("error", message)),
        )

    def of(self, kind):
        return [event for event in self.events if event[0] == kind]


async def collect(source, *args, **kwargs):
    return [event async for event in source.stream(*args, **kwargs)]


class TestLangChainStreamSource:
    @pytest.mark.asyncio
    async def test_text_only_stream(self):
        model = ScriptedChatModel(responses=["Hello there"])

        events = await collect(LangChainStreamSource(model), "system", [HumanMessage(content="hi")])

        assert "".join(e.text for e in events if isinstance(e, TextDelta)) == "Hello there"
        assert isinstance(events[-1], FinishEvent)
        assert events[-1].reason == "stop"
        assert isinstance(model.calls[0][0], SystemMessage)

    @pytest.mark.asyncio
    async def test_tool_iteration(self):
        model = ScriptedChatModel(
            responses=[
                tool_call_message("echo", {"text": "ping"}, call_id="call_1", usage=usage(10, 5)),
                "Echoed.",
            ]
        )

        events = await collect(LangChainStreamSource(model), "system", [HumanMessage(content="echo ping")], [ECHO])

        kinds = [type(e).__name__ for e in events]
        assert kinds[:2] == ["ToolCallEvent", "ToolResultEvent"]
        assert events[0] == ToolCallEvent("call_1", "echo", {"text": "ping"})
        assert events[1] == ToolResultEvent("call_1", "echo", {"echo": "ping"})
        assert events[-1].usage.input_tokens == 10

        second_call = model.calls[1]
        tool_message = second_call[-1]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.tool_call_id == "call_1"
        assert tool_message.content == '{"echo": "ping"}'

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_as_error_result(self):
        model = ScriptedChatModel(responses=[tool_call_message("nope", {}), "ok"])

        events = await collect(LangChainStreamSource(model), "system", [HumanMessage(content="x")], [ECHO])

        result = next(e for e in events if isinstance(e, ToolResultEvent))
        assert result.result == {"error": 'Unknown tool "nope"'}

    @pytest.mark.asyncio
    async def test_iteration_limit(self):
        model = ScriptedChatModel(responses=[tool_call_message("echo", {"text": str(i)}, call_id=f"c{i}") for i in range(5)])

        events = await collect(
            LangChainStreamSource(model), "system", [HumanMessage(content="x")], [ECHO], max_iterations=2
        )

        assert events[-1] == FinishEvent("max_iterations", TokenUsage())
        assert len(model.calls) == 2


class TestTurnLoop:
    @pytest.mark.asyncio
    async def test_event_order_and_end(self):
        source = ScriptedStreamSource(
            [
                [
                    TextDelta("Let me check. "),
                    ToolCallEvent("c1", "echo", {"text": "x"}),
                    ToolResultEvent("c1", "echo", {"echo": "x"}),
                    TextDelta("Done."),
                    FinishEvent("stop", TokenUsage(10, 4, 14)),
                ]
            ]
        )
        recorder = Recorder()

        result = await TurnLoop(source).run([], "echo x", system_prompt="sys", callbacks=recorder.callbacks())

        assert result.ok
        assert result.text == "Let me check. Done."
        assert result.tool_calls == 1
        assert [event[0] for event in recorder.events] == ["chunk", "call", "result", "chunk", "end"]
        assert recorder.of("end")[0][1:] == ("Let me check. Done.", TokenUsage(10, 4, 14))
        assert recorder.of("error") == []

    @pytest.mark.asyncio
    async def test_history_and_user_text_forwarded(self):
        source = ScriptedStreamSource([[TextDelta("hi"), FinishEvent("stop")]])
        history = [HumanMessage(content="earlier")]

        await TurnLoop(source, max_iterations=4).run(history, "now", system_prompt="sys", capabilities=[ECHO])

        call = source.calls[0]
        assert [m.content for m in call["messages"]] == ["earlier", "now"]
        assert call["capabilities"] == ["echo"]
        assert call["max_iterations"] == 4

    @pytest.mark.asyncio
    async def test_no_model(self):
        recorder = Recorder()

        result = await TurnLoop(None).run([], "hi", system_prompt="sys", callbacks=recorder.callbacks())

        assert result.status == "error"
        assert recorder.events == [("error", NO_MODEL_MESSAGE)]

    @pytest.mark.asyncio
    async def test_empty_response_retried_without_tools(self):
        source = ScriptedStreamSource(
            [
                [FinishEvent("stop", TokenUsage(10, 0, 10))],
                [TextDelta("Plain answer."), FinishEvent("stop", TokenUsage(12, 3, 15))],
            ]
        )
        recorder = Recorder()

        result = await TurnLoop(source).run([], "hi", system_prompt="sys", capabilities=[ECHO], callbacks=recorder.callbacks())

        assert result.text == "Plain answer."
        assert result.usage == TokenUsage(22, 3, 25)
        assert [call["capabilities"] for call in source.calls] == [["echo"], []]
        assert recorder.of("end")[0][2] == TokenUsage(22, 3, 25)

    @pytest.mark.asyncio
    async def test_empty_after_retry(self):
        source = ScriptedStreamSource([[FinishEvent("stop")], [FinishEvent("stop")]])
        recorder = Recorder()

        result = await TurnLoop(source).run([], "hi", system_prompt="sys", capabilities=[ECHO], callbacks=recorder.callbacks())

        assert not result.ok
        assert recorder.events == [("error", EMPTY_AFTER_RETRY_MESSAGE)]

    @pytest.mark.asyncio
    async def test_empty_without_tools_offered(self):
        source = ScriptedStreamSource([[FinishEvent("stop")]])
        recorder = Recorder()

        await TurnLoop(source).run([], "hi", system_prompt="sys", callbacks=recorder.callbacks())

        assert len(source.calls) == 1
        assert recorder.events == [("error", EMPTY_RESPONSE_MESSAGE)]

    @pytest.mark.asyncio
    async def test_empty_after_tool_calls(self):
        source = ScriptedStreamSource(
            [
                [ToolCallEvent("c1", "echo", {"text": "x"}), ToolResultEvent("c1", "echo", {}), FinishEvent("stop")],
                [FinishEvent("stop")],
            ]
        )
        recorder = Recorder()

        await TurnLoop(source).run([], "hi", system_prompt="sys", capabilities=[ECHO], callbacks=recorder.callbacks())

        assert recorder.of("error") == [("error", EMPTY_AFTER_TOOLS_MESSAGE)]
        assert recorder.of("end") == []

    @pytest.mark.asyncio
    async def test_stream_error_event(self):
        source = ScriptedStreamSource([[TextDelta("par"), ErrorEvent("upstream exploded")]])
        recorder = Recorder()

        result = await TurnLoop(source).run([], "hi", system_prompt="sys", callbacks=recorder.callbacks())

        assert result.error == "upstream exploded"
        assert recorder.of("error") == [("error", "upstream exploded")]
        assert recorder.of("end") == []

    @pytest.mark.asyncio
    async def test_stream_exception_mapped_to_message(self):
        source = ScriptedStreamSource([[RuntimeError("Error code: 429 - rate_limit_exceeded")]])
        recorder = Recorder()

        await TurnLoop(source).run([], "hi", system_prompt="sys", callbacks=recorder.callbacks())

        assert recorder.events == [("error", "Too many requests, please try again shortly.")]

    @pytest.mark.asyncio
    async def test_cancellation(self):
        cancel_event = asyncio.Event()
        source = ScriptedStreamSource([[TextDelta("partial"), 10.0, TextDelta("never")]])
        recorder = Recorder()
        callbacks = recorder.callbacks()
        callbacks.on_chunk = lambda text: (recorder.events.append(("chunk", text)), cancel_event.set())

        result = await asyncio.wait_for(
            TurnLoop(source).run([], "hi", system_prompt="sys", callbacks=callbacks, cancel_event=cancel_event),
            timeout=2,
        )

        assert result.status == "cancelled"
        assert recorder.events == [("chunk", "partial"), ("error", CANCELLED_MESSAGE)]

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        source = ScriptedStreamSource([[TextDelta("hi"), FinishEvent("stop")]])

        result = await TurnLoop(source).run([], "hi", system_prompt="sys", cancel_event=cancel_event)

        assert result.status == "cancelled"
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_async_callbacks_awaited(self):
        source = ScriptedStreamSource([[TextDelta("a"), TextDelta("b"), FinishEvent("stop")]])
        seen = []

        async def on_chunk(text):
            await asyncio.sleep(0)
            seen.append(text)

        await TurnLoop(source).run([], "hi", system_prompt="sys", callbacks=TurnCallbacks(on_chunk=on_chunk))

        assert seen == ["a", "b"]


class TestCostLookup:
    @pytest.mark.asyncio
    async def test_cost_attached(self):
        source = ScriptedStreamSource([[TextDelta("ok"), FinishEvent("stop", TokenUsage(1000, 1000, 2000))]])

        async def lookup(model_id, turn_usage):
            assert model_id == "gpt-4o-mini"
            return 0.25

        result = await TurnLoop(source, cost_lookup=lookup).run([], "hi", system_prompt="sys")

        assert result.usage.cost == 0.25

    @pytest.mark.asyncio
    async def test_failing_lookup_ignored(self):
        source = ScriptedStreamSource([[TextDelta("ok"), FinishEvent("stop", TokenUsage(1, 1, 2))]])

        async def lookup(model_id, turn_usage):
            raise ConnectionError("pricing service down")

        result = await TurnLoop(source, cost_lookup=lookup).run([], "hi", system_prompt="sys")

        assert result.ok
        assert result.usage == TokenUsage(1, 1, 2)

    @pytest.mark.asyncio
    async def test_slow_lookup_ignored(self):
        source = ScriptedStreamSource([[TextDelta("ok"), FinishEvent("stop")]])

        async def lookup(model_id, turn_usage):
            await asyncio.sleep(5)
            return 1.0

        result = await TurnLoop(source, cost_lookup=lookup, cost_lookup_timeout=0.05).run([], "hi", system_prompt="sys")

        assert result.ok
        assert result.usage.cost is None
