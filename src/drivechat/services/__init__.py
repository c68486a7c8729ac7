"""Service layer composing retrieval and generation."""

from .chat import ChatAnswer, ChatService

__all__ = ["ChatAnswer", "ChatService"]
