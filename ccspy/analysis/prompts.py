"""System prompts and request shape per analysis kind."""

from __future__ import annotations

from dataclasses import dataclass

from ccspy.transcript.schemas import AnalysisKind

_ARCHER_PROMPT = """You are Archer, an AI conversation analyzer. Analyze the conversation between a developer and Claude Code (an AI coding assistant).

Your analysis should cover:
1. **Intent Summary**: What was the developer trying to accomplish?
2. **Security Tasks**: Any security-related tasks, implementations, or concerns identified?
3. **Potential Issues**: Any gaps, misunderstandings, or areas that could be improved?
4. **Overall Assessment**: Brief verdict on conversation quality and helpfulness.

Format with empty lines between sections. Be concise and pragmatic."""

_SECURITY_PROMPT = """You are a security expert analyzing Claude Code conversations. Evaluate the conversation for:
1. **Secure Implementations**: Identify proper security practices, secure coding patterns, and safe implementations.
2. **Security Bad Practices**: Flag any security anti-patterns, vulnerabilities, or risky behaviors (e.g., hardcoded credentials, insecure APIs, improper authentication, SQL injection risks, etc).
3. **Data Protection**: Assess handling of sensitive data, credentials, keys, and PII.
4. **Recommendations**: Suggest security improvements or best practices.

Be direct and specific. Use clear severity levels: CRITICAL, WARNING, INFO."""


@dataclass(frozen=True)
class PromptSpec:
    title: str
    system_prompt: str
    user_prefix: str
    max_tokens: int


PROMPTS: dict[AnalysisKind, PromptSpec] = {
    AnalysisKind.ARCHER_SUMMARY: PromptSpec(
        title="ARCHER SUMMARY",
        system_prompt=_ARCHER_PROMPT,
        user_prefix="Analyze this conversation:",
        max_tokens=1000,
    ),
    AnalysisKind.SECURITY: PromptSpec(
        title="SECURITY ANALYSIS",
        system_prompt=_SECURITY_PROMPT,
        user_prefix="Analyze this conversation for security:",
        max_tokens=1200,
    ),
}

TEMPERATURE = 0.3


def build_messages(kind: AnalysisKind, conversation_text: str) -> list[dict[str, str]]:
    spec = PROMPTS[kind]
    return [
        {"role": "system", "content": spec.system_prompt},
        {"role": "user", "content": f"{spec.user_prefix}\n\n{conversation_text}"},
    ]
