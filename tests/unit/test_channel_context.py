"""Tests for the channel bridge and conversation store."""

import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from conductorAgent.channels import ChannelContext
from conductorAgent.persistence import InMemoryConversationStore
from conductorAgent.utils.error_handler import ChannelChatError

from fakes import ScriptedChatModel, build_test_runtime, tool_call_message


@pytest.fixture
def store():
    return InMemoryConversationStore()


class TestConversationStore:
    def test_messages_round_trip(self, store):
        conversation_id = store.create_conversation("telegram:42")
        store.append_message(conversation_id, "user", "hello")
        store.append_message(conversation_id, "assistant", "hi!")

        messages = [m.to_langchain() for m in store.list_messages(conversation_id)]

        assert isinstance(messages[0], HumanMessage)
        assert isinstance(messages[1], AIMessage)
        assert [m.content for m in messages] == ["hello", "hi!"]

    def test_unknown_conversation(self, store):
        assert store.list_messages("missing") == []
        with pytest.raises(KeyError):
            store.append_message("missing", "user", "x")


class TestConversationMapping:
    def test_resolve_is_stable(self, store):
        context = ChannelContext(build_test_runtime(), "telegram", store)

        first = context.resolve_conversation("chat-1")

        assert context.resolve_conversation("chat-1") == first
        assert context.resolve_conversation("chat-2") != first

    def test_new_conversation_rebinds(self, store):
        context = ChannelContext(build_test_runtime(), "telegram", store)
        first = context.resolve_conversation("chat-1")

        second = context.new_conversation("chat-1")

        assert second != first
        assert context.resolve_conversation("chat-1") == second

    def test_channels_are_isolated(self, store):
        runtime = build_test_runtime()
        telegram = ChannelContext(runtime, "telegram", store)
        slack = ChannelContext(runtime, "slack", store)

        assert telegram.resolve_conversation("same") != slack.resolve_conversation("same")


class TestChannelChat:
    @pytest.mark.asyncio
    async def test_chat_persists_exchange(self, store):
        model = ScriptedChatModel(responses=["Hello!", "You said hi before."])
        context = ChannelContext(build_test_runtime(model), "telegram", store)
        conversation_id = context.resolve_conversation("chat-1")

        reply = await context.chat(conversation_id, "hi")
        await context.chat(conversation_id, "what did I say?")

        assert reply.content == "Hello!"
        stored = store.list_messages(conversation_id)
        assert [(m.role, m.content) for m in stored] == [
            ("user", "hi"),
            ("assistant", "Hello!"),
            ("user", "what did I say?"),
            ("assistant", "You said hi before."),
        ]
        assert reply.message_id == stored[1].id
        second_turn = model.calls[1]
        assert [m.content for m in second_turn[1:]] == ["hi", "Hello!", "what did I say?"]

    @pytest.mark.asyncio
    async def test_failed_turn_raises_and_persists_nothing(self, store):
        context = ChannelContext(build_test_runtime(), "telegram", store)
        conversation_id = context.resolve_conversation("chat-1")

        with pytest.raises(ChannelChatError) as excinfo:
            await context.chat(conversation_id, "hi")

        assert "No active model configured" in excinfo.value.user_message
        assert store.list_messages(conversation_id) == []

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, store):
        context = ChannelContext(build_test_runtime(ScriptedChatModel()), "telegram", store)

        with pytest.raises(ChannelChatError):
            await context.chat("does-not-exist", "hi")

    @pytest.mark.asyncio
    async def test_approval_through_broker(self, store):
        model = ScriptedChatModel(
            responses=[
                tool_call_message("datetime_now", {}, call_id="now_1"),
                "It is nine o'clock.",
            ]
        )
        runtime = build_test_runtime(model)
        context = ChannelContext(runtime, "telegram", store)
        conversation_id = context.resolve_conversation("chat-1")

        broker = context.create_approval_broker(on_request=lambda request: broker.resolve(request.correlation_id, True))
        reply = await asyncio.wait_for(context.chat(conversation_id, "what time is it?", approval_gate=broker), timeout=5)

        assert reply.content == "It is nine o'clock."
        assert broker.history[0].correlation_id == "now_1"
        assert broker.history[0].approved is True

    def test_broker_uses_channel_timeout(self, store):
        context = ChannelContext(build_test_runtime(), "telegram", store)

        assert context.create_approval_broker().timeout == 300
