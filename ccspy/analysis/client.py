"""Analysis client — sends a window of interactions to a chat-completions endpoint.

Uses httpx.AsyncClient. Every failure is mapped onto one of the
AnalysisError subclasses so the watch display can say what to fix:
missing key, bad key, rate limit, timeout, or anything else on the wire.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Sequence

import httpx

from ccspy.analysis.prompts import PROMPTS, TEMPERATURE, build_messages
from ccspy.config import Settings
from ccspy.errors import (
    AnalysisError,
    AnalysisRateLimited,
    AnalysisTimeout,
    AnalysisTransportError,
    AnalysisUnauthorized,
    CredentialMissing,
)
from ccspy.transcript.interactions import format_for_llm
from ccspy.transcript.schemas import AnalysisKind, AnalysisResult, Interaction

logger = logging.getLogger(__name__)

_RETRYABLE_SERVER = (500, 502, 503, 529)
_MAX_RETRY_AFTER = 5.0


class AnalysisClient:
    """Async LLM analysis over an OpenAI-style /chat/completions endpoint."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.analysis_timeout, connect=10.0),
        )

    async def analyze(
        self,
        interactions: Sequence[Interaction],
        kind: AnalysisKind = AnalysisKind.ARCHER_SUMMARY,
    ) -> AnalysisResult:
        """Run one analysis. Raises an AnalysisError subclass on failure."""
        env_var = self._settings.api_key_env
        api_key = os.environ.get(env_var, "")
        if not api_key:
            raise CredentialMissing(env_var)

        model = self._settings.analysis_model
        payload = {
            "model": model,
            "messages": build_messages(kind, format_for_llm(interactions)),
            "temperature": TEMPERATURE,
            "max_tokens": PROMPTS[kind].max_tokens,
        }
        headers = {"Authorization": f"Bearer {api_key}"}

        timeout = self._settings.analysis_timeout
        try:
            data = await asyncio.wait_for(self._post(payload, headers), timeout=timeout)
        except asyncio.TimeoutError:
            raise AnalysisTimeout(f"API request timeout ({timeout:g}s)") from None

        try:
            text = data["choices"][0]["message"]["content"]
            tokens = int(data.get("usage", {}).get("total_tokens", 0))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AnalysisTransportError(f"Unexpected response shape: {e!r}") from e

        return AnalysisResult(text=text or "", tokens_used=tokens, model=model, kind=kind)

    async def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        """POST with one retry for 429 and transient 5xx."""
        url = f"{self._settings.api_base_url.rstrip('/')}/chat/completions"
        last_error: AnalysisError | None = None

        for attempt in range(2):  # initial + 1 retry
            try:
                response = await self._http.post(url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                raise AnalysisTimeout(f"API request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise AnalysisTransportError(f"HTTP error: {e}") from e

            if response.status_code == 200:
                try:
                    return response.json()
                except ValueError as e:
                    raise AnalysisTransportError(f"Invalid JSON from API: {e}") from e

            if response.status_code in (401, 403):
                raise AnalysisUnauthorized(f"API rejected credential ({response.status_code})")

            if response.status_code == 429:
                last_error = AnalysisRateLimited("API rate limit exceeded (429)")
            elif response.status_code in _RETRYABLE_SERVER:
                last_error = AnalysisTransportError(f"API server error ({response.status_code})")
            else:
                raise AnalysisTransportError(
                    f"API error ({response.status_code}): {response.text[:200]}"
                )

            if attempt == 0:
                retry_after = _parse_retry_after(response.headers.get("retry-after"))
                logger.warning(
                    "Analysis API error %d, retrying in %.1fs",
                    response.status_code,
                    retry_after,
                )
                await asyncio.sleep(retry_after)

        raise last_error or AnalysisTransportError("API call failed with unknown error")

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()


def _parse_retry_after(value: str | None) -> float:
    try:
        seconds = float(value) if value else 1.0
    except ValueError:
        seconds = 1.0
    return max(0.0, min(seconds, _MAX_RETRY_AFTER))
