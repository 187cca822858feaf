"""
Generation Options

Per-request sampling parameters, tool declarations and tool choice, mapped
from OpenAI request fields to their Gemini equivalents.
"""

import logging
from typing import Any, Optional

from gemini_proxy.domain.chat import ChatCompletionRequest

logger = logging.getLogger(__name__)


def build_generation_config(
    request: ChatCompletionRequest,
    include_thoughts: bool = False,
) -> Optional[dict[str, Any]]:
    """
    Build Gemini `generationConfig` overrides from an OpenAI request.

    `max_completion_tokens` takes precedence over `max_tokens`.

    Returns:
        Optional[dict]: None when the request carries no overrides
    """
    generation_config: dict[str, Any] = {}

    if request.temperature is not None:
        generation_config["temperature"] = request.temperature
    if request.top_p is not None:
        generation_config["topP"] = request.top_p

    max_tokens = request.max_completion_tokens
    if max_tokens is None:
        max_tokens = request.max_tokens
    if max_tokens is not None:
        generation_config["maxOutputTokens"] = max_tokens

    stop = request.stop
    if isinstance(stop, str):
        generation_config["stopSequences"] = [stop]
    elif isinstance(stop, list):
        seqs = [x for x in stop if isinstance(x, str)]
        if seqs:
            generation_config["stopSequences"] = seqs

    if include_thoughts:
        generation_config["thinkingConfig"] = {"includeThoughts": True}

    return generation_config or None


# JSON Schema keywords the OpenAPI subset of Gemini `parameters` rejects
_UNSUPPORTED_SCHEMA_KEYS = frozenset({"$schema", "additionalProperties"})
# Keywords whose values map property names to sub-schemas
_SCHEMA_MAP_KEYS = frozenset({"properties", "$defs", "definitions"})

_TOOL_CHOICE_MODES = {
    "auto": "AUTO",
    "none": "NONE",
    "required": "ANY",
    "any": "ANY",
}


def clean_parameters_schema(schema: Any) -> Any:
    """Strip keywords Gemini rejects from an OpenAI function parameter schema."""
    if isinstance(schema, list):
        return [clean_parameters_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    cleaned: dict[str, Any] = {}
    for key, value in schema.items():
        if key in _UNSUPPORTED_SCHEMA_KEYS:
            continue
        if key in _SCHEMA_MAP_KEYS and isinstance(value, dict):
            # Property names are user data, never keywords
            cleaned[key] = {name: clean_parameters_schema(sub) for name, sub in value.items()}
        else:
            cleaned[key] = clean_parameters_schema(value)
    return cleaned


def _function_declaration(tool: Any) -> Optional[dict[str, Any]]:
    if not isinstance(tool, dict) or tool.get("type") != "function":
        return None
    fn = tool.get("function")
    if not isinstance(fn, dict):
        return None
    name = fn.get("name")
    if not isinstance(name, str) or not name:
        return None

    declaration: dict[str, Any] = {"name": name}
    if isinstance(fn.get("description"), str):
        declaration["description"] = fn["description"]
    if isinstance(fn.get("parameters"), dict):
        declaration["parameters"] = clean_parameters_schema(fn["parameters"])
    return declaration


def convert_tools(tools: Any) -> Optional[list[dict[str, Any]]]:
    """
    Map OpenAI `tools` to one Gemini tool holding all `functionDeclarations`.

    Non-function tools are ignored. Gemini rejects repeated function names,
    so only the first declaration of a name is kept.
    """
    if not isinstance(tools, list):
        return None

    declarations: dict[str, dict[str, Any]] = {}
    for tool in tools:
        declaration = _function_declaration(tool)
        if declaration is None:
            continue
        if declaration["name"] in declarations:
            logger.warning("Ignoring duplicate tool declaration: %s", declaration["name"])
            continue
        declarations[declaration["name"]] = declaration

    if not declarations:
        return None
    return [{"functionDeclarations": list(declarations.values())}]


def convert_tool_choice(choice: Any) -> Optional[dict[str, Any]]:
    """
    Map OpenAI `tool_choice` to Gemini `toolConfig`.

    A named function becomes mode ANY restricted to that function. Unknown
    values yield None so Gemini applies its default.
    """
    if isinstance(choice, str):
        mode = _TOOL_CHOICE_MODES.get(choice)
        return {"functionCallingConfig": {"mode": mode}} if mode else None

    if not isinstance(choice, dict):
        return None

    fn = choice.get("function")
    if choice.get("type") == "function" and isinstance(fn, dict) and isinstance(fn.get("name"), str):
        return {
            "functionCallingConfig": {
                "mode": "ANY",
                "allowedFunctionNames": [fn["name"]],
            }
        }
    mode = _TOOL_CHOICE_MODES.get(choice.get("type"))
    return {"functionCallingConfig": {"mode": mode}} if mode else None
