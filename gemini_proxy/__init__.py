"""
Gemini OpenAI Proxy

OpenAI Chat Completions compatible HTTP front end for Google Gemini.
"""

__version__ = "0.1.0"
