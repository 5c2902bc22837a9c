"""ccspy: watch a coding assistant's live session log.

Tails the session transcript, echoes new messages, and asks an LLM for a
summary or security review once the assistant goes quiet.
"""
