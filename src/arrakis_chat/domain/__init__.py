"""Conversation data model and wire protocol."""

from .models import (
    API,
    DEFAULT_API,
    AnthropicApi,
    AnthropicModel,
    Conversation,
    GroqApi,
    GroqModel,
    Message,
    MessageType,
    OpenAIApi,
    OpenAIModel,
    new_conversation,
)
from .protocol import SchemaError, encode_request, validate_request, validate_response

__all__ = [
    "API",
    "DEFAULT_API",
    "AnthropicApi",
    "AnthropicModel",
    "Conversation",
    "GroqApi",
    "GroqModel",
    "Message",
    "MessageType",
    "OpenAIApi",
    "OpenAIModel",
    "SchemaError",
    "encode_request",
    "new_conversation",
    "validate_request",
    "validate_response",
]
