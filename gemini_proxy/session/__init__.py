"""
Session Module Initialization
"""

from gemini_proxy.session.session_registry import Session, SessionMode, SessionRegistry

__all__ = ["Session", "SessionMode", "SessionRegistry"]
