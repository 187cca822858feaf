"""
Engine Stream Event Types

One event per engine emission. `FinishedEvent` is terminal and may carry
usage metadata (Gemini `usageMetadata` shape).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class StreamEventType(str, Enum):
    """Types of engine stream events."""
    CONTENT = "content"
    THOUGHT = "thought"
    TOOL_CALL_REQUEST = "tool_call_request"
    FINISHED = "finished"


@dataclass
class ContentEvent:
    """Incremental response text."""
    type: StreamEventType = field(default=StreamEventType.CONTENT, init=False)
    text: str = ""


@dataclass
class ThoughtEvent:
    """Reasoning fragment."""
    type: StreamEventType = field(default=StreamEventType.THOUGHT, init=False)
    subject: str = ""
    description: str = ""


@dataclass
class ToolCallRequestEvent:
    """Model-requested function invocation."""
    type: StreamEventType = field(default=StreamEventType.TOOL_CALL_REQUEST, init=False)
    call_id: str = ""
    name: str = ""
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class FinishedEvent:
    """Terminal event: engine finish reason (e.g. "STOP") and usage counts."""
    type: StreamEventType = field(default=StreamEventType.FINISHED, init=False)
    reason: Optional[str] = None
    # promptTokenCount / candidatesTokenCount / totalTokenCount
    usage: Optional[dict[str, Any]] = None


StreamEvent = Union[
    ContentEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
    FinishedEvent,
]
