"""Conversation memory helpers."""

from .buffers import ConversationMemory, MemoryEntry

__all__ = ["ConversationMemory", "MemoryEntry"]
