"""
CompletionGateway
-----------------
Asks an OpenAI-compatible chat-completions endpoint (OpenRouter by default)
for one reply, trying the configured backends in priority order.

Every attempt ends in exactly one of three ways:

* SUCCESS: non-empty reply, stop and return it;
* EXHAUSTED: quota/rate limit (or per-call timeout) on that backend, move on;
* HARD_FAILURE: anything else, stop and report it. Later backends are not tried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from assistant.errors import HardProviderFailure, ProviderError, QuotaExhausted
from logging_config import configure_logger

logger = configure_logger("completion_gateway")

QUOTA_STATUS_CODES = frozenset({402, 429})
QUOTA_ERROR_CODES = frozenset({"insufficient_quota", "rate_limit_exceeded", "quota_exceeded"})
QUOTA_HINTS = ("quota", "rate limit", "rate-limit", "ratelimit", "too many requests", "insufficient credits")


@dataclass(frozen=True)
class CompletionBackend:
    identifier: str
    priority: int


def backends_from_models(models: Iterable[str]) -> List[CompletionBackend]:
    """Priority follows list order: the first model is tried first."""
    return [CompletionBackend(identifier=m, priority=i) for i, m in enumerate(models)]


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    HARD_FAILURE = "hard_failure"


class GatewayStatus(str, Enum):
    SUCCESS = "success"
    HARD_FAILURE = "hard_failure"
    NO_PROVIDER_AVAILABLE = "no_provider_available"


@dataclass(frozen=True)
class BackendAttempt:
    backend: str
    outcome: AttemptOutcome
    reason: Optional[str] = None


@dataclass(frozen=True)
class CompletionResult:
    status: GatewayStatus
    reply: Optional[str] = None
    backend: Optional[str] = None
    reason: Optional[str] = None
    attempts: Tuple[BackendAttempt, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status is GatewayStatus.SUCCESS


# ---------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------
def looks_like_quota(message: Optional[str]) -> bool:
    """Text heuristic, only used when the provider gives no structured code."""
    text = (message or "").lower()
    return any(hint in text for hint in QUOTA_HINTS)


def _error_code(exc: openai.APIStatusError) -> Optional[str]:
    if getattr(exc, "code", None):
        return str(exc.code)
    body = exc.body if isinstance(exc.body, dict) else {}
    nested = body.get("error") if isinstance(body.get("error"), dict) else body
    code = nested.get("code")
    return str(code) if code is not None else None


def classify_exception(backend: str, exc: BaseException) -> ProviderError:
    if isinstance(exc, (asyncio.TimeoutError, openai.APITimeoutError)):
        return QuotaExhausted(backend, "request timed out")
    if isinstance(exc, openai.RateLimitError):
        return QuotaExhausted(backend, f"rate limited: {exc.message}", 429)
    if isinstance(exc, openai.APIStatusError):
        code = _error_code(exc)
        if exc.status_code in QUOTA_STATUS_CODES or code in QUOTA_ERROR_CODES:
            return QuotaExhausted(backend, f"quota exhausted ({code or exc.status_code}): {exc.message}", exc.status_code)
        if code is None and looks_like_quota(exc.message):
            return QuotaExhausted(backend, f"quota exhausted: {exc.message}", exc.status_code)
        return HardProviderFailure(backend, f"HTTP {exc.status_code}: {exc.message}", exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return HardProviderFailure(backend, f"connection error: {exc}")
    return HardProviderFailure(backend, f"{type(exc).__name__}: {exc}")


def _body_error(backend: str, error: Any) -> ProviderError:
    """Some routers answer 200 with an ``error`` object instead of choices."""
    if not isinstance(error, dict):
        return HardProviderFailure(backend, f"error payload: {error!r}")
    code = error.get("code")
    if isinstance(code, str) and code.isdigit():
        code = int(code)
    message = str(error.get("message", ""))
    if code in QUOTA_STATUS_CODES or str(code) in QUOTA_ERROR_CODES:
        return QuotaExhausted(backend, f"quota exhausted ({code}): {message}", code if isinstance(code, int) else None)
    if code is None and looks_like_quota(message):
        return QuotaExhausted(backend, f"quota exhausted: {message}")
    return HardProviderFailure(backend, f"error payload ({code}): {message}", code if isinstance(code, int) else None)


def extract_reply(backend: str, response: Any) -> str:
    error = getattr(response, "error", None)
    if error:
        raise _body_error(backend, error)
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError) as exc:
        raise HardProviderFailure(backend, f"malformed completion response: {exc!r}") from exc
    if not isinstance(content, str) or not content.strip():
        raise HardProviderFailure(backend, "empty completion content")
    return content


# ---------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------
class CompletionGateway:
    def __init__(
        self,
        backends: Iterable[CompletionBackend],
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 0,
        temperature: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self.backends: Tuple[CompletionBackend, ...] = tuple(sorted(backends, key=lambda b: b.priority))
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.temperature = temperature
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    async def _call(self, backend: CompletionBackend, messages: List[Dict[str, Any]]) -> str:
        kwargs: Dict[str, Any] = {"model": backend.identifier, "messages": messages}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        try:
            response = await asyncio.wait_for(
                self._get_client().chat.completions.create(**kwargs),
                timeout=self.timeout,
            )
        except Exception as exc:
            raise classify_exception(backend.identifier, exc) from exc
        return extract_reply(backend.identifier, response)

    async def complete(self, messages: List[Dict[str, Any]]) -> CompletionResult:
        attempts: List[BackendAttempt] = []
        last_exhaustion: Optional[str] = None

        for backend in self.backends:
            try:
                reply = await self._call(backend, messages)
            except QuotaExhausted as exc:
                logger.warning("Backend %s exhausted: %s", backend.identifier, exc.reason)
                attempts.append(BackendAttempt(backend.identifier, AttemptOutcome.EXHAUSTED, exc.reason))
                last_exhaustion = str(exc)
                continue
            except HardProviderFailure as exc:
                logger.error("Backend %s failed hard: %s", backend.identifier, exc.reason)
                attempts.append(BackendAttempt(backend.identifier, AttemptOutcome.HARD_FAILURE, exc.reason))
                return CompletionResult(
                    status=GatewayStatus.HARD_FAILURE,
                    backend=backend.identifier,
                    reason=str(exc),
                    attempts=tuple(attempts),
                )

            logger.info("Reply from %s after %d attempt(s).", backend.identifier, len(attempts) + 1)
            attempts.append(BackendAttempt(backend.identifier, AttemptOutcome.SUCCESS))
            return CompletionResult(
                status=GatewayStatus.SUCCESS,
                reply=reply,
                backend=backend.identifier,
                attempts=tuple(attempts),
            )

        logger.error("No completion backend available: %s", last_exhaustion or "none configured")
        return CompletionResult(
            status=GatewayStatus.NO_PROVIDER_AVAILABLE,
            reason=last_exhaustion or "no completion backends configured",
            attempts=tuple(attempts),
        )

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if self._client is not None and close is not None:
            await close()
