"""
Text-improvement adapter.

Rewrites a user's message through the Gemini ``generateContent`` REST
endpoint. One attempt per call, bounded by a hard timeout. Provider
failures are classified into the ``TextImprovementError`` subclasses below,
checked in this order: timeout, rate limit, authentication, anything else.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


PROMPT_TEMPLATE = """Ты помогаешь пользователю улучшить его сообщение, которое он отправляет в службу поддержки или контактную форму компании.

Перепиши следующее сообщение пользователя так, чтобы оно звучало более профессионально и понятно, но сохраняло тот же смысл и намерение. Исправь грамматические и орфографические ошибки. Сделай текст вежливым, но не слишком формальным. Сохрани точку зрения пользователя (от первого лица).

Исходное сообщение пользователя: {message}

Верни только улучшенную версию сообщения без дополнительных комментариев или пояснений."""


# =============================================================================
# Errors
# =============================================================================

class TextImprovementError(Exception):
    """Base class. Carries the HTTP status and the message shown to users."""
    status_code = 500
    user_message = "Не удалось улучшить сообщение. Попробуйте позже."
    result = "error"


class ImprovementTimeout(TextImprovementError):
    status_code = 504
    user_message = "Сервис временно недоступен. Попробуйте позже."
    result = "timeout"


class ImprovementRateLimited(TextImprovementError):
    status_code = 429
    user_message = "Превышен лимит запросов. Попробуйте позже."
    result = "rate_limited"


class ImprovementAuthError(TextImprovementError):
    # Deliberately the same text as a missing key: never hint at credentials
    status_code = 500
    user_message = "AI сервис временно недоступен"
    result = "auth_error"


class ImprovementFailed(TextImprovementError):
    pass


def classify_provider_error(status_code: int, message: str) -> TextImprovementError:
    """
    Map a non-success provider response to an error kind.

    Args:
        status_code: HTTP status returned by the provider
        message: Provider error message, if any

    Returns:
        An exception instance, not raised
    """
    lowered = (message or "").lower()
    detail = f"provider status {status_code}: {message}"
    if status_code == 429 or "quota" in lowered:
        return ImprovementRateLimited(detail)
    if status_code in (401, 403) or "api key" in lowered:
        return ImprovementAuthError(detail)
    return ImprovementFailed(detail)


# =============================================================================
# Adapter
# =============================================================================

@dataclass
class ImprovementResult:
    improved_message: str
    tokens_used: Optional[int] = None


class GeminiTextImprover:
    """
    Calls Gemini to polish a support message.

    Args:
        api_key: Provider credential, sent as ``x-goog-api-key``
        model: Gemini model name
        api_base: Base URL of the Generative Language API
        timeout_seconds: Hard upper bound for the whole call
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def improve(self, message: str) -> ImprovementResult:
        """
        Rewrite ``message``. Raises a TextImprovementError subclass on failure.
        """
        prompt = PROMPT_TEMPLATE.format(message=message)
        logger.debug(f"Requesting improvement, prompt length: {len(prompt)}")

        try:
            data = await asyncio.wait_for(self._generate(prompt), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"Gemini call timed out after {self.timeout_seconds}s")
            raise ImprovementTimeout("timeout") from e
        except httpx.RequestError as e:
            logger.error(f"Gemini request failed: {type(e).__name__}: {e}")
            raise ImprovementFailed(str(e)) from e

        return self._parse(data)

    async def _generate(self, prompt: str) -> dict:
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            r = await client.post(self.endpoint, json=payload, headers=headers)

        if r.status_code != 200:
            provider_message = _error_message(r)
            error = classify_provider_error(r.status_code, provider_message)
            if isinstance(error, ImprovementAuthError):
                logger.error("Gemini rejected the API key")
            else:
                logger.error(f"Gemini API error: {error}")
            raise error

        try:
            return r.json()
        except ValueError as e:
            logger.error(f"Gemini returned non-JSON body: {r.text[:200]}")
            raise ImprovementFailed("invalid provider response") from e

    @staticmethod
    def _parse(data: dict) -> ImprovementResult:
        candidates = data.get("candidates") or []
        parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
        improved = "".join(part.get("text", "") for part in parts).strip()
        if not improved:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            logger.error(f"Gemini returned no text (blockReason={block_reason})")
            raise ImprovementFailed("empty provider response")

        usage = data.get("usageMetadata") or {}
        return ImprovementResult(
            improved_message=improved,
            tokens_used=usage.get("totalTokenCount"),
        )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", ""))
    return response.text[:500]


def get_text_improver() -> GeminiTextImprover:
    """FastAPI dependency building the adapter from settings."""
    return GeminiTextImprover(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        api_base=settings.GEMINI_API_BASE,
        timeout_seconds=settings.AI_IMPROVE_TIMEOUT_SECONDS,
    )
