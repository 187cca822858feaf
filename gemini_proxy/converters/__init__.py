"""
Converters Module Initialization
"""

from gemini_proxy.converters.generation_config import (
    build_generation_config,
    convert_tool_choice,
    convert_tools,
)
from gemini_proxy.converters.message_converter import ConversionResult, MessageConverter

__all__ = [
    "ConversionResult",
    "MessageConverter",
    "build_generation_config",
    "convert_tool_choice",
    "convert_tools",
]
