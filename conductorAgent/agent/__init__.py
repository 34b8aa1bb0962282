"""Conversation turn execution: model streaming, usage accounting and the turn loop."""
