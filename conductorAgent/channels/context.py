"""Channel context: the operations a messaging bridge needs from the runtime.

A channel adapter maps its external chat identities onto conversations, sends
user text through the turn loop and gets the full assistant text back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from conductorAgent.hitl.approval import ApprovalBroker, ApprovalGate, ApprovalRequest
from conductorAgent.persistence.conversation_store import ConversationStore, InMemoryConversationStore
from conductorAgent.runtime.app import ConductorRuntime
from conductorAgent.utils.error_handler import ChannelChatError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatReply:
    message_id: str
    content: str


class ChannelContext:
    """Conversation bridge for one channel (e.g. a chat-bot integration)."""

    def __init__(
        self,
        runtime: ConductorRuntime,
        channel_id: str,
        store: Optional[ConversationStore] = None,
    ) -> None:
        self.runtime = runtime
        self.channel_id = channel_id
        self.store = store or InMemoryConversationStore()

    def resolve_conversation(self, external_chat_id: str) -> str:
        """Existing conversation for the external chat, or a new one."""
        conversation_id = self.store.get_channel_session(self.channel_id, external_chat_id)
        if conversation_id and self.store.conversation_exists(conversation_id):
            return conversation_id
        return self.new_conversation(external_chat_id)

    def new_conversation(self, external_chat_id: str) -> str:
        """Start a fresh conversation and bind the external chat to it."""
        conversation_id = self.store.create_conversation(title=f"{self.channel_id}:{external_chat_id}")
        self.store.set_channel_session(self.channel_id, external_chat_id, conversation_id)
        LOGGER.info(f"New conversation {conversation_id} for {self.channel_id}:{external_chat_id}")
        return conversation_id

    def create_approval_broker(
        self,
        on_request: Optional[Callable[[ApprovalRequest], Union[None, Awaitable[None]]]] = None,
    ) -> ApprovalBroker:
        """Broker that auto-denies after the channel approval timeout."""
        return ApprovalBroker(
            on_request=on_request,
            timeout=self.runtime.settings.governance.channel_approval_timeout_seconds,
        )

    async def chat(
        self,
        conversation_id: str,
        text: str,
        approval_gate: Optional[ApprovalGate] = None,
    ) -> ChatReply:
        """Run one turn and persist both sides of the exchange on success."""
        if not self.store.conversation_exists(conversation_id):
            raise ChannelChatError(f"Unknown conversation: {conversation_id}")

        history = [message.to_langchain() for message in self.store.list_messages(conversation_id)]
        result = await self.runtime.chat_turn(history, text, approval_gate=approval_gate)
        if not result.ok:
            LOGGER.warning(f"Channel {self.channel_id} turn failed: {result.error}")
            raise ChannelChatError(result.error or "Turn failed", user_message=result.error)

        self.store.append_message(conversation_id, "user", text)
        stored = self.store.append_message(conversation_id, "assistant", result.text)
        return ChatReply(message_id=stored.id, content=result.text)
