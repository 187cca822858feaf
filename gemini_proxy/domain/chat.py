"""
Chat Completion Domain Model

Inbound OpenAI Chat Completions request shapes. Message content is a closed
tagged union: a plain string, or a list of `text` / `image_url` parts.
"""

from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import Literal


Role = Literal["system", "user", "assistant", "tool"]


class ImageURL(BaseModel):
    """Image reference: inline `data:` URI or remote http(s) URL"""

    url: str = Field(..., min_length=1, description="Image URL or data URI")
    # OpenAI-specific resolution hint; the engine has no equivalent
    detail: Optional[Literal["auto", "low", "high"]] = None

    @property
    def is_inline(self) -> bool:
        return self.url.startswith("data:")

    @property
    def is_remote(self) -> bool:
        lowered = self.url.lower()
        return lowered.startswith("http://") or lowered.startswith("https://")


class TextContentPart(BaseModel):
    """Text content part"""

    type: Literal["text"]
    text: str = ""


class ImageContentPart(BaseModel):
    """Image content part"""

    type: Literal["image_url"]
    image_url: ImageURL

    @field_validator("image_url", mode="before")
    @classmethod
    def _coerce_bare_url(cls, value: Any) -> Any:
        # Some clients send "image_url": "<url>" instead of an object
        if isinstance(value, str):
            return {"url": value}
        return value


ContentPart = Annotated[
    Union[TextContentPart, ImageContentPart],
    Field(discriminator="type"),
]
MessageContent = Union[str, list[ContentPart]]


class FunctionCall(BaseModel):
    """Function name and JSON-encoded arguments of a tool call"""

    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    """Tool call requested by the assistant in an earlier turn"""

    id: Optional[str] = None
    type: Literal["function"] = "function"
    function: FunctionCall


class ChatMessage(BaseModel):
    """One conversation turn"""

    model_config = ConfigDict(extra="allow")

    role: Role
    content: Optional[MessageContent] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None


class ChatCompletionRequest(BaseModel):
    """
    Chat Completions Request Model

    `model` and `messages` are optional at the schema level so that the
    service can report `invalid_model` / `invalid_messages` itself.
    """

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: Optional[list[ChatMessage]] = None
    stream: Optional[bool] = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    max_completion_tokens: Optional[int] = None
    stop: Optional[Union[str, list[str]]] = None
    tools: Optional[list[dict[str, Any]]] = None
    tool_choice: Optional[Union[str, dict[str, Any]]] = None

    @property
    def is_stream(self) -> bool:
        """Is stream request"""
        return bool(self.stream)
