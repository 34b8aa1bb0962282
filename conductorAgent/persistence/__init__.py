"""Conversation storage."""

from .conversation_store import ConversationStore, InMemoryConversationStore, StoredMessage

__all__ = ["ConversationStore", "InMemoryConversationStore", "StoredMessage"]
