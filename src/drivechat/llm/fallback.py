"""Ordered provider fallback with per-provider circuit breakers."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from drivechat.errors import ProviderError, ProviderTimeoutError
from drivechat.ingest.models import DocumentChunk
from drivechat.telemetry import emit_fallback_result, emit_provider_attempt

from .circuit_breaker import BreakerState, CircuitBreaker, Clock
from .providers import ChatProvider

LOGGER = logging.getLogger(__name__)

LONG_PROMPT_CHARS = 8000
LONG_PROMPT_TIMEOUT = 60.0
SHORT_PROMPT_TIMEOUT = 25.0
HEALTH_PROBE_TIMEOUT = 8.0
HEALTH_PROBE_COOLDOWN = 30.0
HEALTH_PROBE_PROMPT = "Health check - respond with just 'OK'"

OVERLOAD_SIGNATURES = (
    "503",
    "service unavailable",
    "overloaded",
    "429",
    "quota",
    "rate limit",
    "resource exhausted",
    "resource_exhausted",
)


def timeout_for_prompt(prompt: str) -> float:
    return LONG_PROMPT_TIMEOUT if len(prompt) > LONG_PROMPT_CHARS else SHORT_PROMPT_TIMEOUT


def is_overload_error(error: BaseException) -> bool:
    """Return ``True`` for quota, rate-limit and overload failures."""

    if getattr(error, "status_code", None) in (429, 503):
        return True
    message = str(error).lower()
    return any(signature in message for signature in OVERLOAD_SIGNATURES)


def synthesize_answer(chunks: Sequence[DocumentChunk]) -> str:
    """Deterministic answer used when no provider produced one."""

    file_names: List[str] = []
    for chunk in chunks:
        if chunk.file_name not in file_names:
            file_names.append(chunk.file_name)

    if not file_names:
        return (
            "I'm currently unable to reach the language model service. "
            "Please try again in a moment."
        )
    listing = "\n".join(f"- {name}" for name in file_names)
    return (
        "I'm currently unable to reach the language model service, but I found "
        "relevant information in the following documents:\n"
        f"{listing}\n\n"
        "Please try again in a moment for a complete answer."
    )


@dataclass(slots=True)
class FallbackResult:
    text: str
    provider: Optional[str]
    attempted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def synthesized(self) -> bool:
        return self.provider is None


class ProviderFallbackExecutor:
    """Try providers in order until one answers.

    Providers whose breaker is open are skipped. Overload-type failures open
    the breaker for ``cooldown_seconds``; every failure moves on to the next
    provider. When all providers fail the answer is synthesized from the
    retrieved chunks, so :meth:`generate` never raises.
    """

    def __init__(
        self,
        providers: Sequence[ChatProvider],
        *,
        cooldown_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._providers: List[ChatProvider] = list(providers)
        self._breakers: Dict[str, CircuitBreaker] = {
            provider.name: CircuitBreaker(provider.name, cooldown_seconds=cooldown_seconds, clock=clock)
            for provider in self._providers
        }

    @property
    def providers(self) -> List[ChatProvider]:
        return list(self._providers)

    def breaker(self, name: str) -> CircuitBreaker:
        return self._breakers[name]

    async def generate(self, prompt: str, retrieved_chunks: Sequence[DocumentChunk] = ()) -> FallbackResult:
        started = time.perf_counter()
        result = FallbackResult(text="", provider=None)
        timeout = timeout_for_prompt(prompt)

        for provider in self._providers:
            breaker = self._breakers[provider.name]
            if not breaker.allow_request():
                LOGGER.info("Skipping provider %s: circuit open", provider.name)
                result.skipped.append(provider.name)
                continue

            result.attempted.append(provider.name)
            attempt_started = time.perf_counter()
            try:
                text = await self._invoke(provider, prompt, timeout)
            except asyncio.CancelledError:
                breaker.release_trial()
                raise
            except Exception as exc:
                tripped = breaker.record_failure(trip=is_overload_error(exc))
                result.errors[provider.name] = str(exc)
                emit_provider_attempt(
                    provider=provider.name,
                    outcome="timeout" if isinstance(exc, ProviderTimeoutError) else "error",
                    duration_ms=(time.perf_counter() - attempt_started) * 1000,
                    timeout=timeout,
                    error=exc,
                    tripped=tripped,
                )
                continue

            breaker.record_success()
            emit_provider_attempt(
                provider=provider.name,
                outcome="success",
                duration_ms=(time.perf_counter() - attempt_started) * 1000,
                timeout=timeout,
            )
            result.text = text
            result.provider = provider.name
            break

        if result.provider is None:
            LOGGER.warning(
                "All chat providers failed or were unavailable; synthesizing answer from %d chunks",
                len(retrieved_chunks),
            )
            result.text = synthesize_answer(retrieved_chunks)

        result.duration_ms = (time.perf_counter() - started) * 1000
        emit_fallback_result(
            attempted=result.attempted,
            skipped=result.skipped,
            provider_used=result.provider,
            duration_ms=result.duration_ms,
            prompt_len=len(prompt),
        )
        return result

    async def probe(
        self,
        *,
        timeout: float = HEALTH_PROBE_TIMEOUT,
        cooldown_seconds: float = HEALTH_PROBE_COOLDOWN,
    ) -> Dict[str, bool]:
        """Send a short prompt to every available provider.

        A failing provider is marked unavailable for ``cooldown_seconds``.
        """

        healthy: Dict[str, bool] = {}
        for provider in self._providers:
            breaker = self._breakers[provider.name]
            if breaker.state is BreakerState.OPEN:
                healthy[provider.name] = False
                continue
            try:
                await self._invoke(provider, HEALTH_PROBE_PROMPT, timeout)
            except Exception as exc:
                LOGGER.warning("Health probe for provider %s failed: %s", provider.name, exc)
                breaker.trip(cooldown_seconds)
                healthy[provider.name] = False
                continue
            breaker.record_success()
            healthy[provider.name] = True
        return healthy

    def status(self) -> List[Dict[str, object]]:
        return [
            {"name": provider.name, "model": provider.model, **self._breakers[provider.name].snapshot()}
            for provider in self._providers
        ]

    @staticmethod
    async def _invoke(provider: ChatProvider, prompt: str, timeout: float) -> str:
        try:
            text = await asyncio.wait_for(provider.invoke(prompt), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(provider.name, timeout) from exc
        if not text or not text.strip():
            raise ProviderError(provider.name, "empty response")
        return text
