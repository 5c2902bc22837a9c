"""Transcript access: schemas, reader, interaction reduction, session lookup."""

from ccspy.transcript.interactions import estimate_tokens, extract_interactions, format_for_llm
from ccspy.transcript.reader import ConversationReader, read_conversation
from ccspy.transcript.schemas import AnalysisKind, AnalysisResult, Interaction, Message

__all__ = [
    "AnalysisKind",
    "AnalysisResult",
    "ConversationReader",
    "Interaction",
    "Message",
    "estimate_tokens",
    "extract_interactions",
    "format_for_llm",
    "read_conversation",
]
