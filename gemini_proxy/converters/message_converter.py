"""
Message Converter

Converts an OpenAI-shaped conversation into Gemini `Content` turns plus an
extracted system instruction.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union
from urllib.parse import urlparse

import httpx
from typing_extensions import assert_never

from gemini_proxy.common.errors import InvalidRequestError
from gemini_proxy.domain.chat import (
    ChatMessage,
    ContentPart,
    ImageContentPart,
    ImageURL,
    TextContentPart,
)

logger = logging.getLogger(__name__)

_MIME_BY_EXTENSION = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
}
_DEFAULT_IMAGE_MIME = "image/jpeg"


@dataclass
class ConversionResult:
    """Engine-side view of a conversation."""

    system_instruction: Optional[str] = None
    # Gemini Content dicts: {"role": "user" | "model", "parts": [...]}
    contents: list[dict[str, Any]] = field(default_factory=list)


def guess_image_mime_type(url: str) -> str:
    """Infer an image MIME type from the URL's file extension."""
    path = urlparse(url).path.lower()
    for extension, mime_type in _MIME_BY_EXTENSION.items():
        if path.endswith(extension):
            return mime_type
    return _DEFAULT_IMAGE_MIME


def parse_data_uri(url: str) -> dict[str, Any]:
    """
    Turn a `data:<mime>;base64,<payload>` URI into an inlineData part.

    Raises:
        InvalidRequestError: The URI is not base64 encoded
    """
    header, sep, payload = url.partition(",")
    if not sep or not header.endswith(";base64") or not payload:
        raise InvalidRequestError(
            message="Image data URI must have the form data:<mime>;base64,<data>",
            code="invalid_image_url",
        )
    mime_type = header[len("data:"):-len(";base64")] or _DEFAULT_IMAGE_MIME
    return {"inlineData": {"mimeType": mime_type, "data": payload}}


def parse_tool_arguments(arguments: str, function_name: str) -> dict[str, Any]:
    """
    Decode the JSON argument string of an assistant tool call.

    Raises:
        InvalidRequestError: The argument string is not valid JSON
    """
    if not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise InvalidRequestError(
            message=f"Invalid JSON in arguments of tool call '{function_name}': {exc.msg}",
            code="invalid_tool_arguments",
        ) from exc
    if not isinstance(parsed, dict):
        return {"value": parsed}
    return parsed


def _join_text(content: Union[str, list[ContentPart], None]) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "\n".join(
        part.text for part in content if isinstance(part, TextContentPart) and part.text
    )


class MessageConverter:
    """
    OpenAI -> Gemini conversation converter.

    Remote images are downloaded during conversion because the engine cannot
    dereference arbitrary URLs. A failed download drops that image only.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        image_fetch_timeout: float = 30.0,
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self._image_fetch_timeout = image_fetch_timeout

    async def _get_http_client(self) -> httpx.AsyncClient:
        """
        Get or create the image download client

        Returns:
            httpx.AsyncClient: client shared by every conversion
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._image_fetch_timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the download client if this converter created it"""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def convert(self, messages: Sequence[ChatMessage]) -> ConversionResult:
        """
        Convert OpenAI messages to Gemini contents.

        Args:
            messages: Conversation in OpenAI shape

        Returns:
            ConversionResult: system instruction (last system turn wins) and contents
        """
        result = ConversionResult()

        for message in messages:
            role = message.role

            if role == "system":
                result.system_instruction = _join_text(message.content)
                continue

            if role == "user":
                parts = await self._content_to_parts(message.content)
                if parts:
                    result.contents.append({"role": "user", "parts": parts})
                continue

            if role == "assistant":
                parts = await self._content_to_parts(message.content)
                for tool_call in message.tool_calls or []:
                    name = tool_call.function.name
                    parts.append(
                        {
                            "functionCall": {
                                "name": name,
                                "args": parse_tool_arguments(tool_call.function.arguments, name),
                            }
                        }
                    )
                if parts:
                    result.contents.append({"role": "model", "parts": parts})
                continue

            if role == "tool":
                # The raw tool output is forwarded untouched, never JSON-decoded
                result.contents.append(
                    {
                        "role": "user",
                        "parts": [
                            {
                                "functionResponse": {
                                    "name": message.tool_call_id or message.name or "tool",
                                    "response": {"result": _join_text(message.content)},
                                }
                            }
                        ],
                    }
                )
                continue

            assert_never(role)

        return result

    async def _content_to_parts(
        self, content: Union[str, list[ContentPart], None]
    ) -> list[dict[str, Any]]:
        if content is None:
            return []
        if isinstance(content, str):
            return [{"text": content}] if content.strip() else []

        parts: list[dict[str, Any]] = []
        for item in content:
            if isinstance(item, TextContentPart):
                if item.text.strip():
                    parts.append({"text": item.text})
            elif isinstance(item, ImageContentPart):
                part = await self._image_to_part(item.image_url)
                if part is not None:
                    parts.append(part)
            else:
                assert_never(item)
        return parts

    async def _image_to_part(self, image: ImageURL) -> Optional[dict[str, Any]]:
        if image.is_inline:
            return parse_data_uri(image.url)
        if image.is_remote:
            return await self._fetch_remote_image(image.url)
        raise InvalidRequestError(
            message="Image URL must be a data URI or an http(s) URL",
            code="invalid_image_url",
        )

    async def _fetch_remote_image(self, url: str) -> Optional[dict[str, Any]]:
        try:
            client = await self._get_http_client()
            response = await client.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Dropping image that could not be fetched: url=%s error=%s", url, e)
            return None

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        mime_type = content_type if content_type.startswith("image/") else guess_image_mime_type(url)
        return {
            "inlineData": {
                "mimeType": mime_type,
                "data": base64.b64encode(response.content).decode("ascii"),
            }
        }
