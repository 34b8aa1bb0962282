"""Conversation storage used by channel adapters."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage


@dataclass(frozen=True)
class StoredMessage:
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_langchain(self) -> BaseMessage:
        if self.role == "assistant":
            return AIMessage(content=self.content)
        return HumanMessage(content=self.content)


class ConversationStore(Protocol):
    def create_conversation(self, title: Optional[str] = None) -> str: ...

    def conversation_exists(self, conversation_id: str) -> bool: ...

    def get_channel_session(self, channel_id: str, external_chat_id: str) -> Optional[str]: ...

    def set_channel_session(self, channel_id: str, external_chat_id: str, conversation_id: str) -> None: ...

    def list_messages(self, conversation_id: str) -> List[StoredMessage]: ...

    def append_message(self, conversation_id: str, role: str, content: str) -> StoredMessage: ...


class InMemoryConversationStore:
    """Process-local conversation store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._titles: Dict[str, Optional[str]] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._sessions: Dict[Tuple[str, str], str] = {}

    def create_conversation(self, title: Optional[str] = None) -> str:
        conversation_id = uuid.uuid4().hex
        with self._lock:
            self._titles[conversation_id] = title
            self._messages[conversation_id] = []
        return conversation_id

    def conversation_exists(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._messages

    def get_channel_session(self, channel_id: str, external_chat_id: str) -> Optional[str]:
        with self._lock:
            return self._sessions.get((channel_id, external_chat_id))

    def set_channel_session(self, channel_id: str, external_chat_id: str, conversation_id: str) -> None:
        with self._lock:
            self._sessions[(channel_id, external_chat_id)] = conversation_id

    def list_messages(self, conversation_id: str) -> List[StoredMessage]:
        with self._lock:
            return list(self._messages.get(conversation_id, []))

    def append_message(self, conversation_id: str, role: str, content: str) -> StoredMessage:
        message = StoredMessage(id=uuid.uuid4().hex, conversation_id=conversation_id, role=role, content=content)
        with self._lock:
            if conversation_id not in self._messages:
                raise KeyError(f"Unknown conversation: {conversation_id}")
            self._messages[conversation_id].append(message)
        return message
