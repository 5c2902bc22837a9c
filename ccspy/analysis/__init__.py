"""LLM analysis of recent interactions (summary and security review)."""

from ccspy.analysis.client import AnalysisClient
from ccspy.analysis.prompts import PROMPTS, PromptSpec

__all__ = ["AnalysisClient", "PROMPTS", "PromptSpec"]
