"""Prompt templates and loader."""

from nldb.prompts.loader import PromptLoader

__all__ = ["PromptLoader"]
