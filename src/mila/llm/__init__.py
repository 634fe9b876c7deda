"""
Mila - LLM Client.

Provides structured LLM calls via Instructor.
"""

from mila.llm.client import call_llm, call_llm_text, get_client

__all__ = [
    "get_client",
    "call_llm",
    "call_llm_text",
]
