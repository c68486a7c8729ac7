"""Chat-completion providers addressed by name."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List, Optional, Protocol, runtime_checkable

import httpx

from drivechat.config import Settings
from drivechat.embeddings import GEMINI_BASE_URL
from drivechat.errors import ProviderError

LOGGER = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MAX_NEW_TOKENS = 512


@runtime_checkable
class ChatProvider(Protocol):
    """Single-turn text generation backend."""

    name: str
    model: str

    async def invoke(self, prompt: str) -> str:
        ...


class _HTTPChatProvider:
    name = "http"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        temperature: float = 0.7,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.temperature = temperature
        self._client = client
        self._timeout = timeout

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if response.status_code != 200:
            LOGGER.warning(
                "Provider %s returned status %d: %s",
                self.name,
                response.status_code,
                response.text[:200],
            )
            raise ProviderError(
                self.name,
                f"{response.status_code} {response.reason_phrase}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response.json()


class GeminiChatProvider(_HTTPChatProvider):
    """Gemini ``generateContent`` over REST."""

    name = "gemini"

    async def invoke(self, prompt: str) -> str:
        model = self.model if self.model.startswith("models/") else f"models/{self.model}"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        data = await self._post(
            f"{GEMINI_BASE_URL}/{model}:generateContent",
            payload,
            {"x-goog-api-key": self._api_key},
        )
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise ProviderError(self.name, f"no candidates returned ({feedback.get('blockReason', 'unknown reason')})")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts).strip()
        if not text:
            raise ProviderError(self.name, "empty response")
        return text


class OpenAIChatProvider(_HTTPChatProvider):
    """OpenAI chat completions over REST."""

    name = "openai"

    async def invoke(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }
        data = await self._post(
            f"{OPENAI_BASE_URL}/chat/completions",
            payload,
            {"Authorization": f"Bearer {self._api_key}"},
        )
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, "no choices returned")
        text = str((choices[0].get("message") or {}).get("content") or "").strip()
        if not text:
            raise ProviderError(self.name, "empty response")
        return text


class LocalTransformersProvider:
    """Causal language model loaded from ``LLM_MODEL_PATH`` with transformers."""

    name = "local"

    def __init__(
        self,
        model_path: str,
        *,
        temperature: float = 0.7,
        max_new_tokens: int = DEFAULT_MAX_NEW_TOKENS,
    ) -> None:
        self.model = model_path
        self.temperature = temperature
        self.max_new_tokens = max_new_tokens
        self._tokenizer = None
        self._model = None
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._model is not None and self._tokenizer is not None:
                return
            try:
                from transformers import AutoModelForCausalLM, AutoTokenizer
            except ImportError as exc:
                raise ProviderError(self.name, "transformers is not installed") from exc

            LOGGER.info("Loading local model from %s", self.model)
            try:
                tokenizer = AutoTokenizer.from_pretrained(self.model)
                model = AutoModelForCausalLM.from_pretrained(self.model, low_cpu_mem_usage=True)
            except Exception as exc:
                raise ProviderError(self.name, f"failed to load model: {exc}") from exc
            model.eval()
            self._tokenizer = tokenizer
            self._model = model

    def _generate(self, prompt: str) -> str:
        self._ensure_loaded()
        import torch

        tokenizer = self._tokenizer
        inputs = tokenizer(
            prompt,
            return_tensors="pt",
            truncation=True,
            max_length=getattr(tokenizer, "model_max_length", 4096),
        )
        do_sample = self.temperature > 0.0
        generate_kwargs: dict[str, Any] = {
            "max_new_tokens": self.max_new_tokens,
            "do_sample": do_sample,
            "pad_token_id": tokenizer.pad_token_id or tokenizer.eos_token_id,
            "eos_token_id": tokenizer.eos_token_id,
        }
        if do_sample:
            generate_kwargs["temperature"] = float(self.temperature)

        with torch.no_grad():
            output_ids = self._model.generate(**inputs, **generate_kwargs)
        input_length = inputs["input_ids"].shape[1]
        text = tokenizer.decode(output_ids[0, input_length:], skip_special_tokens=True).strip()
        if not text:
            raise ProviderError(self.name, "empty response")
        return text

    async def invoke(self, prompt: str) -> str:
        return await asyncio.to_thread(self._generate, prompt)


def create_providers(settings: Settings) -> List[ChatProvider]:
    """Instantiate every configured provider in ``LLM_PROVIDER_ORDER``.

    A provider whose key (or model path) is absent is left out.
    """

    providers: List[ChatProvider] = []
    for name in settings.provider_order:
        if name == "gemini" and settings.gemini_api_key:
            providers.append(
                GeminiChatProvider(
                    settings.gemini_api_key,
                    settings.gemini_chat_model,
                    temperature=settings.llm_temperature,
                )
            )
        elif name == "openai" and settings.openai_api_key:
            providers.append(
                OpenAIChatProvider(
                    settings.openai_api_key,
                    settings.openai_chat_model,
                    temperature=settings.llm_temperature,
                )
            )
        elif name == "local" and settings.local_model_path:
            providers.append(
                LocalTransformersProvider(settings.local_model_path, temperature=settings.llm_temperature)
            )
        elif name not in {"gemini", "openai", "local"}:
            LOGGER.warning("Ignoring unknown provider %r in LLM_PROVIDER_ORDER", name)
    LOGGER.info("Initialised %d chat providers: %s", len(providers), [p.name for p in providers])
    return providers
