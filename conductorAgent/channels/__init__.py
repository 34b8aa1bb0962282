"""Channel-facing surface of the runtime."""

from .context import ChannelContext, ChatReply

__all__ = ["ChannelContext", "ChatReply"]
