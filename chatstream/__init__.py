"""Streaming chat engine for generative language model providers."""
from chatstream.config import EngineConfig
from chatstream.engine import ChatEngine
from chatstream.models import Attachment, Conversation, Message, MessageRole, ReconciledResponse, StreamEvent

__version__ = "0.1.0"

__all__ = [
    "Attachment",
    "ChatEngine",
    "Conversation",
    "EngineConfig",
    "Message",
    "MessageRole",
    "ReconciledResponse",
    "StreamEvent",
]
