"""Embedding backends used to build and query session indices."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Protocol, Sequence

import httpx

from drivechat.config import Settings
from drivechat.errors import ProviderError
from drivechat.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_BATCH_LIMIT = 100
HASH_DIMENSION = 384


class EmbeddingProvider(Protocol):
    """Protocol describing the embedding provider contract."""

    @property
    def model_name(self) -> str:
        ...

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one embedding vector per input text, in order."""


class _TimedEmbedder(ABC):
    """Shared telemetry wrapper around a concrete ``_embed`` implementation."""

    _model_name = "unknown"

    @property
    def model_name(self) -> str:
        return self._model_name

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        try:
            embeddings = await self._embed(list(texts))
        except Exception as error:
            emit_embeddings_event(
                model=self._model_name,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            raise

        emit_embeddings_event(
            model=self._model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return embeddings

    @abstractmethod
    async def _embed(self, texts: List[str]) -> List[List[float]]:
        """Return one vector per text; called only with a non-empty list."""


class GeminiEmbeddingModel(_TimedEmbedder):
    """Remote embeddings through the Gemini ``batchEmbedContents`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "models/text-embedding-004",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model_name = model if model.startswith("models/") else f"models/{model}"
        self._client = client
        self._timeout = timeout

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for offset in range(0, len(texts), GEMINI_BATCH_LIMIT):
            batch = texts[offset : offset + GEMINI_BATCH_LIMIT]
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        payload = {
            "requests": [
                {"model": self._model_name, "content": {"parts": [{"text": text}]}}
                for text in batch
            ]
        }
        url = f"{GEMINI_BASE_URL}/{self._model_name}:batchEmbedContents"
        headers = {"x-goog-api-key": self._api_key}
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=headers)

        if response.status_code != 200:
            LOGGER.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise ProviderError(
                "gemini-embeddings",
                f"{response.status_code} {response.reason_phrase}: {response.text[:200]}",
                status_code=response.status_code,
            )

        embeddings = response.json().get("embeddings", [])
        if len(embeddings) != len(batch):
            raise ProviderError(
                "gemini-embeddings",
                f"expected {len(batch)} embeddings, received {len(embeddings)}",
            )
        return [[float(value) for value in item.get("values", [])] for item in embeddings]


class LocalEmbeddingModel(_TimedEmbedder):
    """Wrapper around a SentenceTransformer model loaded on first use."""

    def __init__(self, model_name_or_path: str | None = None, *, device: str | None = None) -> None:
        self._model_name = model_name_or_path or DEFAULT_LOCAL_MODEL
        self._device = device
        self._model = None

    def _load(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            LOGGER.info("Loading sentence-transformers model %s", self._model_name)
            self._model = SentenceTransformer(self._model_name, device=self._device)
        return self._model

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        return await asyncio.to_thread(self._encode, texts)

    def _encode(self, texts: List[str]) -> List[List[float]]:
        embeddings = self._load().encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


class HashEmbeddingModel(_TimedEmbedder):
    """Deterministic pseudo-embeddings for offline development."""

    def __init__(self, dimension: int = HASH_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension
        self._model_name = "deterministic-hash"

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        return [self._deterministic_embedding(text) for text in texts]

    def _deterministic_embedding(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
        rng = random.Random(seed)
        return [rng.uniform(-1.0, 1.0) for _ in range(self._dimension)]


def create_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Instantiate the embedding backend selected by ``EMBEDDING_BACKEND``."""

    backend = settings.embedding_backend
    if backend == "gemini":
        if not settings.gemini_api_key:
            raise ValueError("EMBEDDING_BACKEND=gemini requires GEMINI_API_KEY")
        return GeminiEmbeddingModel(settings.gemini_api_key, model=settings.embedding_model)
    if backend == "local":
        model = settings.embedding_model
        if model.startswith("models/"):
            model = DEFAULT_LOCAL_MODEL
        return LocalEmbeddingModel(model)
    if backend == "hash":
        return HashEmbeddingModel()
    raise ValueError(f"Unsupported EMBEDDING_BACKEND: {backend!r}")
