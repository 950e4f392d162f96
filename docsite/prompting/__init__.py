"""Prompt construction for planning and page generation."""

from .builder import ContextFile, PageContext, PromptBuilder, PromptRequest, plan_signature

__all__ = ["ContextFile", "PageContext", "PromptBuilder", "PromptRequest", "plan_signature"]
