"""Conversation event emission and the in-memory event store."""
