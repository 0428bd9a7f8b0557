"""
Chat Relay - streaming chat handlers in front of a hosted completion API.

This package relays browser chat histories to the model, optionally lets the
model call mock tools, and streams the reply back as plain text or as
``data:`` event frames that the bundled client reconciles into messages.
"""

__version__ = "0.1.0"

from .client import ChatClient, StreamReconciler, reconcile_stream
from .gateway import CompletionGateway
from .messages import Conversation, Message
from .tool_registry import ToolRegistry, callable_to_tool_schema, tool

__all__ = [
    "ChatClient",
    "CompletionGateway",
    "Conversation",
    "Message",
    "StreamReconciler",
    "ToolRegistry",
    "callable_to_tool_schema",
    "reconcile_stream",
    "tool",
]
