"""OpenAI embeddings generation with validation."""

import asyncio
from typing import Protocol

from openai import OpenAI

from advisor_engine.core.config import get_settings
from advisor_engine.core.exceptions import EmbeddingError
from advisor_engine.core.logging import get_logger

logger = get_logger(__name__)


class Embedder(Protocol):
    """Text-embedding capability used by the knowledge base."""

    async def embed(self, text: str) -> list[float]: ...


def _get_client() -> OpenAI:
    """Get OpenAI client instance.

    The HTTP timeout matches the embedder's await timeout so a stalled
    request does not keep its worker thread busy after the caller gave up.
    """
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.EMBEDDING_TIMEOUT_SECONDS)


def embed_texts(texts: list[str]) -> list[list[float]]:
    """
    Generate embeddings for a list of texts using OpenAI.

    Args:
        texts: List of text strings to embed

    Returns:
        List of embedding vectors (each vector is list of floats)

    Raises:
        ValueError: If embedding dimension doesn't match expected EMBEDDING_DIM
        Exception: If OpenAI API call fails
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()

    try:
        response = client.embeddings.create(
            model=settings.EMBEDDING_MODEL,
            input=texts,
        )

        embeddings = []
        for i, embedding_obj in enumerate(response.data):
            embedding = embedding_obj.embedding

            if len(embedding) != settings.EMBEDDING_DIM:
                raise ValueError(
                    f"Embedding dimension mismatch for text {i}: "
                    f"expected {settings.EMBEDDING_DIM}, got {len(embedding)}"
                )

            embeddings.append(embedding)

        logger.info(
            f"Generated {len(embeddings)} embeddings using {settings.EMBEDDING_MODEL}",
            extra={"extra_data": {"model": settings.EMBEDDING_MODEL, "count": len(embeddings)}},
        )

        return embeddings

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise


async def embed_texts_async(texts: list[str]) -> list[list[float]]:
    """Async wrapper around embed_texts using thread pool."""
    return await asyncio.to_thread(embed_texts, texts)


class OpenAIEmbedder:
    """Embedder backed by the OpenAI embeddings endpoint, bounded by a timeout."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else get_settings().EMBEDDING_TIMEOUT_SECONDS

    async def embed(self, text: str) -> list[float]:
        try:
            vectors = await asyncio.wait_for(embed_texts_async([text]), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.timeout}s") from e
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

        if not vectors:
            raise EmbeddingError("Embedding service returned no vectors")
        return vectors[0]
