"""
Service Layer Module Initialization
"""

from gemini_proxy.services.chat_service import ChatCompletionService, PreparedTurn
from gemini_proxy.services.model_service import AVAILABLE_MODEL_IDS, ModelService

__all__ = [
    "AVAILABLE_MODEL_IDS",
    "ChatCompletionService",
    "ModelService",
    "PreparedTurn",
]
