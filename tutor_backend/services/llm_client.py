"""
tutor_backend/services/llm_client.py
Upstream Chat-Completion Client

Calls the OpenRouter-compatible /chat/completions endpoint with an explicit
per-attempt deadline, and fails over from the primary to the fallback model.

Every failure is mapped onto the tutor error taxonomy:
- deadline exceeded                          → UpstreamTimeoutError (timeout)
- transport error / non-2xx / bad envelope   → UpstreamUnavailableError
- blank content                              → UpstreamUnavailableError
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

import httpx

from tutor_backend.config.settings import TutorSettings
from tutor_backend.errors import TutorError, UpstreamTimeoutError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ModelResult:
    text: str
    model: str


async def try_in_order(
    candidates: Sequence[T],
    attempt: Callable[[T], Awaitable[R]],
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
) -> R:
    """
    Run attempt() against each candidate until one succeeds.

    Only exceptions listed in retry_on move on to the next candidate;
    anything else (including cancellation) propagates immediately.

    Raises:
        ValueError: No candidates given
        The last candidate's exception when every attempt fails
    """
    if not candidates:
        raise ValueError("try_in_order needs at least one candidate")

    last_error: Optional[BaseException] = None
    for index, candidate in enumerate(candidates):
        try:
            return await attempt(candidate)
        except retry_on as e:
            last_error = e
            if index < len(candidates) - 1:
                logger.warning(f"[LLM] Candidate {candidate} failed ({e}); trying next")
    raise last_error


class LLMClient:
    """
    Async chat-completion client.

    The httpx.AsyncClient is shared for the app lifetime (see main.py);
    no locks are held while a request is in flight.
    """

    def __init__(self, http: httpx.AsyncClient, settings: TutorSettings):
        self.http = http
        self.settings = settings
        self.total_tokens_used = 0

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.settings.app_base_url,
            "X-Title": self.settings.app_title,
        }

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.http.post(
            self.settings.endpoint,
            headers=self._headers(),
            json=payload,
            timeout=self.settings.timeout_seconds,
        )

    async def invoke(self, messages: List[Dict[str, str]], model: str) -> ModelResult:
        """
        Single upstream attempt.

        Args:
            messages: Composed role-tagged messages
            model: Upstream model identifier

        Returns:
            ModelResult with the stripped completion text

        Raises:
            UpstreamTimeoutError: Deadline exceeded
            UpstreamUnavailableError: Any other upstream failure
        """
        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.settings.temperature,
        }
        timeout = self.settings.timeout_seconds

        try:
            response = await asyncio.wait_for(self._post(payload), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"[LLM] {model} timed out after {timeout:g}s")
            raise UpstreamTimeoutError(model=model, timeout_seconds=timeout)
        except httpx.HTTPError as e:
            logger.warning(f"[LLM] {model} transport error: {e}")
            raise UpstreamUnavailableError(details={"model": model})

        if not response.is_success:
            logger.warning(f"[LLM] {model} returned {response.status_code}: {response.text[:200]}")
            raise UpstreamUnavailableError(details={"model": model, "status": response.status_code})

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning(f"[LLM] {model} returned a malformed envelope")
            raise UpstreamUnavailableError(details={"model": model})

        if not isinstance(content, str) or not content.strip():
            logger.warning(f"[LLM] {model} returned empty content")
            raise UpstreamUnavailableError(details={"model": model})

        # Usage is accounting only; a bad block never costs a valid answer.
        usage = data.get("usage")
        tokens_used = usage.get("total_tokens") if isinstance(usage, dict) else 0
        if not isinstance(tokens_used, int) or isinstance(tokens_used, bool):
            tokens_used = 0
        self.total_tokens_used += tokens_used
        logger.info(f"[LLM] {model} call: {tokens_used} tokens (total: {self.total_tokens_used})")

        return ModelResult(text=content.strip(), model=model)

    async def invoke_with_fallback(self, messages: List[Dict[str, str]]) -> ModelResult:
        """
        Primary model, then exactly one retry on the fallback model.

        Raises:
            UpstreamUnavailableError: Both attempts failed
        """
        models = [self.settings.primary_model, self.settings.fallback_model]
        try:
            return await try_in_order(
                models,
                lambda model: self.invoke(messages, model),
                retry_on=(TutorError,),
            )
        except TutorError as e:
            logger.error(f"[LLM] Primary and fallback models failed (last: {e.code})")
            raise UpstreamUnavailableError(details={"models": models, "last_error": e.code})
