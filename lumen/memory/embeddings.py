"""Embedding providers for memory search.

Two backends, tried in the order given by ``EMBEDDING_PROVIDER_ORDER``:

- ``openai``: the OpenAI SDK. ``OPENAI_BASE_URL`` points it at any
  OpenAI-compatible endpoint.
- ``nvidia-nim``: NVIDIA NIM's embeddings endpoint over HTTP. NIM's
  retrieval models embed queries and passages differently.

Providers whose key is missing or still a template placeholder are
skipped, not tried.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
import openai

from lumen.config import settings
from lumen.errors import ProviderError

logger = logging.getLogger(__name__)

_PLACEHOLDER_VALUES = {"OpenAI API Key"}


class EmbeddingProvider(Protocol):
    name: str

    async def embed_query(self, text: str) -> list[float]: ...

    async def embed_passage(self, text: str) -> list[float]: ...


def is_placeholder_key(key: str | None) -> bool:
    """True for keys left empty or copied unchanged from an env template."""
    if not key or not key.strip():
        return True
    key = key.strip()
    return (
        key.startswith("your-")
        or "PLACEHOLDER" in key
        or key in _PLACEHOLDER_VALUES
        or key.endswith("-xxx")
    )


class OpenAIEmbedding:
    """OpenAI (or OpenAI-compatible) embeddings."""

    name = "openai"

    def __init__(self, api_key: str, model: str, base_url: str | None = None) -> None:
        self._model = model
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url or None)

    async def _embed(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(model=self._model, input=text)
        except openai.OpenAIError as exc:
            msg = f"OpenAI embedding failed: {exc}"
            raise ProviderError(msg) from exc
        return list(response.data[0].embedding)

    async def embed_query(self, text: str) -> list[float]:
        return await self._embed(text)

    async def embed_passage(self, text: str) -> list[float]:
        return await self._embed(text)


class NvidiaNIMEmbedding:
    """NVIDIA NIM embeddings with query/passage input types."""

    name = "nvidia-nim"

    def __init__(self, api_key: str, model: str, base_url: str) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    async def _embed(self, text: str, input_type: str) -> list[float]:
        payload = {
            "input": [text],
            "model": self._model,
            "input_type": input_type,
            "encoding_format": "float",
            "truncate": "END",
        }
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                resp = await client.post(
                    f"{self._base_url}/embeddings",
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                resp.raise_for_status()
            return list(resp.json()["data"][0]["embedding"])
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
            msg = f"NVIDIA NIM embedding failed: {exc}"
            raise ProviderError(msg) from exc

    async def embed_query(self, text: str) -> list[float]:
        return await self._embed(text, "query")

    async def embed_passage(self, text: str) -> list[float]:
        return await self._embed(text, "passage")


def _build(name: str) -> EmbeddingProvider | None:
    if name == "openai":
        if is_placeholder_key(settings.openai_api_key):
            return None
        return OpenAIEmbedding(
            api_key=settings.openai_api_key,
            model=settings.openai_embedding_model,
            base_url=settings.openai_base_url,
        )
    if name == "nvidia-nim":
        if is_placeholder_key(settings.nvidia_nim_api_key):
            return None
        return NvidiaNIMEmbedding(
            api_key=settings.nvidia_nim_api_key,
            model=settings.nvidia_nim_embedding_model,
            base_url=settings.nvidia_nim_base_url,
        )
    logger.warning("Unknown embedding provider '%s' in EMBEDDING_PROVIDER_ORDER", name)
    return None


def embedding_providers() -> list[EmbeddingProvider]:
    """Configured providers in priority order, placeholders skipped."""
    providers = []
    for name in settings.get_embedding_provider_order():
        provider = _build(name)
        if provider is None:
            logger.debug("Skipping embedding provider '%s'", name)
            continue
        providers.append(provider)
    return providers
