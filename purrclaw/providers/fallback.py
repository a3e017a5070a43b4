"""Provider wrapper that retries retryable primary failures on a fallback."""

from __future__ import annotations

import re
from typing import Any, Iterable

from loguru import logger

from purrclaw.providers.base import LLMProvider, LLMResponse

DEFAULT_RETRYABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"timed out", re.IGNORECASE),
    re.compile(r"rate limit", re.IGNORECASE),
    re.compile(r"429"),
    re.compile(r"5\d\d"),
    re.compile(r"network", re.IGNORECASE),
    re.compile(r"econnreset", re.IGNORECASE),
    re.compile(r"connection reset", re.IGNORECASE),
    re.compile(r"socket hang up", re.IGNORECASE),
)


def is_retryable(
    error: BaseException,
    patterns: Iterable[re.Pattern[str]] = DEFAULT_RETRYABLE_PATTERNS,
) -> bool:
    """Classify an error as transient based on its message text."""
    text = str(error) or error.__class__.__name__
    return any(pattern.search(text) for pattern in patterns)


class FallbackProvider(LLMProvider):
    """
    Wrap a primary and a fallback provider.

    Every call tries the primary first. Retryable failures are re-issued once
    to the fallback; anything else is re-raised unchanged. There is no sticky
    failover between calls.
    """

    name = "fallback"

    def __init__(
        self,
        primary: LLMProvider,
        fallback: LLMProvider,
        fallback_model: str | None = None,
        retryable_patterns: Iterable[re.Pattern[str]] | None = None,
    ):
        super().__init__(api_key=None, api_base=None)
        self.primary = primary
        self.fallback = fallback
        self.fallback_model = fallback_model
        self.retryable_patterns = tuple(retryable_patterns or DEFAULT_RETRYABLE_PATTERNS)

    def get_default_model(self) -> str:
        return self.primary.get_default_model()

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ) -> LLMResponse:
        try:
            return await self.primary.chat(
                messages=messages,
                tools=tools,
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            if not is_retryable(e, self.retryable_patterns):
                raise
            logger.warning(f"Primary provider failed, switching to fallback: {e}")

        return await self.fallback.chat(
            messages=messages,
            tools=tools,
            model=self.fallback_model or model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
