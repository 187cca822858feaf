"""
API Router Module Initialization
"""

from gemini_proxy.api.deps import get_chat_service, get_model_service, verify_api_key

__all__ = [
    "get_chat_service",
    "get_model_service",
    "verify_api_key",
]
