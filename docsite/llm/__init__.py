"""Generation backend adapters."""

from .runner import Backend, LLMRequest, LLMRunner

__all__ = ["Backend", "LLMRequest", "LLMRunner"]
