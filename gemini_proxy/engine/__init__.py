"""
Engine Module Initialization
"""

from gemini_proxy.engine.base import EngineAPIError, EngineChat, EngineClient
from gemini_proxy.engine.gemini_client import GeminiChat, GeminiClient

__all__ = [
    "EngineAPIError",
    "EngineChat",
    "EngineClient",
    "GeminiChat",
    "GeminiClient",
]
