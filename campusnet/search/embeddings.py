"""
Embedding generator client (OpenAI-compatible ``/embeddings`` endpoint).
"""

import logging
from typing import Optional

import httpx

from campusnet.config import (
    EMBEDDING_API_KEY,
    EMBEDDING_API_URL,
    EMBEDDING_MODEL,
    EMBEDDING_TIMEOUT,
)
from campusnet.errors import EmbeddingFailure

logger = logging.getLogger(__name__)


class EmbeddingClient:
    def __init__(self, client: httpx.AsyncClient, model: str = EMBEDDING_MODEL, dimensions: Optional[int] = None):
        self.client = client
        self.model = model
        # when set, every vector must have exactly this length
        self.dimensions = dimensions

    @classmethod
    def from_settings(cls) -> "EmbeddingClient":
        headers = {}
        if EMBEDDING_API_KEY:
            headers["Authorization"] = f"Bearer {EMBEDDING_API_KEY}"
        client = httpx.AsyncClient(base_url=EMBEDDING_API_URL, timeout=EMBEDDING_TIMEOUT, headers=headers)
        return cls(client)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def embed(self, text: str) -> list[float]:
        text = (text or "").strip()
        if not text:
            raise EmbeddingFailure("Nothing to embed")

        try:
            res = await self.client.post("/embeddings", json={"model": self.model, "input": text})
            res.raise_for_status()
            data = res.json()
            vector = [float(v) for v in data["data"][0]["embedding"]]
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("embedding request failed (model=%s): %r", self.model, e)
            raise EmbeddingFailure()

        if not vector:
            raise EmbeddingFailure()
        if self.dimensions is not None and len(vector) != self.dimensions:
            logger.error("embedding has %d dimensions, expected %d", len(vector), self.dimensions)
            raise EmbeddingFailure()
        return vector
