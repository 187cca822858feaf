"""
Domain Model Module Initialization
"""

from gemini_proxy.domain.chat import (
    ChatCompletionRequest,
    ChatMessage,
    ContentPart,
    FunctionCall,
    ImageContentPart,
    ImageURL,
    TextContentPart,
    ToolCall,
)
from gemini_proxy.domain.events import (
    ContentEvent,
    FinishedEvent,
    StreamEvent,
    StreamEventType,
    ThoughtEvent,
    ToolCallRequestEvent,
)
from gemini_proxy.domain.model import ModelCard, ModelList

__all__ = [
    # Chat
    "ChatCompletionRequest",
    "ChatMessage",
    "ContentPart",
    "FunctionCall",
    "ImageContentPart",
    "ImageURL",
    "TextContentPart",
    "ToolCall",
    # Events
    "ContentEvent",
    "FinishedEvent",
    "StreamEvent",
    "StreamEventType",
    "ThoughtEvent",
    "ToolCallRequestEvent",
    # Models
    "ModelCard",
    "ModelList",
]
