"""
Embedding functions injected into the EmbeddingStore.

OpenAIEmbedder calls the embeddings endpoint; HashEmbedder is a
deterministic, offline stand-in that still gives related texts related
vectors (shared words push the same dimensions).
"""

import hashlib
import logging
import math
from typing import List, Optional

import httpx

from .config import GrandCentralConfig
from .errors import EmbeddingDimensionMismatch, InvalidCredentials, ProviderAPIError
from .models import Provider

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Async callable: ``await embedder(text) -> list[float]``."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise InvalidCredentials("OpenAI API key required for embeddings", provider=Provider.OPENAI)
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._http = http_client

    @classmethod
    def from_config(cls, config: GrandCentralConfig, api_key: str, **kwargs) -> "OpenAIEmbedder":
        return cls(
            api_key,
            model=config.embedding_model,
            dimension=config.embedding_dimension,
            base_url=config.embedding_base_url,
            timeout_s=config.call_timeout_s,
            **kwargs,
        )

    async def __call__(self, text: str) -> List[float]:
        payload = {"model": self.model, "input": text}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}/embeddings"
        if self._http is not None:
            resp = await self._http.post(url, headers=headers, json=payload, timeout=self.timeout_s)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                resp = await client.post(url, headers=headers, json=payload)
        resp.raise_for_status()
        try:
            embedding = resp.json()["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise ProviderAPIError("Malformed embeddings response", provider=Provider.OPENAI) from None
        if len(embedding) != self.dimension:
            raise EmbeddingDimensionMismatch(self.dimension, len(embedding))
        return embedding


class HashEmbedder:
    """
    Deterministic pseudo-embeddings from word hashes.
    For production, swap with a real embedding model.
    """

    def __init__(self, dimension: int = 128):
        self.dimension = dimension

    def embed(self, text: str) -> List[float]:
        vec = [0.0] * self.dimension
        for word in text.lower().split():
            h = int(hashlib.md5(word.encode()).hexdigest(), 16)
            for d in range(self.dimension):
                vec[d] += ((h >> (d % 128)) & 1) * 2 - 1  # Map to -1/+1
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            # Empty text still needs a usable direction.
            vec[0] = 1.0
            return vec
        return [v / norm for v in vec]

    async def __call__(self, text: str) -> List[float]:
        return self.embed(text)
