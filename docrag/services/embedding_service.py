"""
Embedding Service
Generates vector embeddings using OpenAI's text-embedding-3 models.
"""
from typing import List, Optional
import structlog
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from docrag.config import Settings, get_settings
from docrag.errors import ConfigurationError, EmbeddingError
from docrag.models.schemas import Chunk
from docrag.services.chunking_service import get_chunking_service

logger = structlog.get_logger()


class EmbeddingService:
    """Generates embeddings using OpenAI's embedding models."""

    # Maximum tokens per request (model limit)
    MAX_TOKENS_PER_REQUEST = 8191

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set", provider="openai")
            client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        self.client = client
        self.chunking_service = get_chunking_service()

    def _truncate(self, text: str) -> str:
        # Rough estimate: 4 chars per token
        max_chars = self.MAX_TOKENS_PER_REQUEST * 4
        if len(text) > max_chars:
            logger.warning("Text truncated for embedding", original_length=len(text))
            return text[:max_chars]
        return text

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    async def _create_embeddings(self, inputs: List[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(
            model=self.settings.embedding_model,
            input=inputs,
            dimensions=self.settings.embedding_dimensions
        )
        return [item.embedding for item in response.data]

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        try:
            embeddings = await self._create_embeddings([self._truncate(text)])
        except Exception as e:
            logger.error("Embedding failed", error=str(e))
            raise EmbeddingError(f"Failed to generate embedding: {e}", provider="openai") from e

        if not embeddings:
            raise EmbeddingError("Embedding response was empty", provider="openai")
        return embeddings[0]

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, one request per group.

        Groups are sent sequentially and results keep the input order.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors
        """
        logger.info("Generating embeddings", count=len(texts))

        batch_size = self.settings.embedding_batch_size
        total_batches = (len(texts) + batch_size - 1) // batch_size
        all_embeddings: List[List[float]] = []

        # Process in batches
        for i in range(0, len(texts), batch_size):
            batch = [self._truncate(t) for t in texts[i:i + batch_size]]
            batch_num = i // batch_size + 1

            try:
                batch_embeddings = await self._create_embeddings(batch)
            except Exception as e:
                logger.error("Batch embedding failed", batch_num=batch_num, error=str(e))
                raise EmbeddingError(f"Failed to generate embeddings: {e}", provider="openai") from e

            if len(batch_embeddings) != len(batch):
                raise EmbeddingError(
                    f"Expected {len(batch)} embeddings, got {len(batch_embeddings)}",
                    provider="openai"
                )
            all_embeddings.extend(batch_embeddings)

            logger.info(
                "Batch embedded",
                batch_num=batch_num,
                total_batches=total_batches,
                batch_size=len(batch)
            )

        logger.info(
            "Embeddings complete",
            total=len(all_embeddings),
            dimensions=self.settings.embedding_dimensions
        )

        return all_embeddings

    async def embed_chunks(self, chunks: List[Chunk]) -> List[List[float]]:
        """
        Generate embeddings for document chunks.

        Args:
            chunks: Chunks from the chunking service

        Returns:
            List of embedding vectors (one per chunk)
        """
        texts = [self.chunking_service.get_chunk_for_embedding(chunk) for chunk in chunks]
        return await self.embed_texts(texts)

    async def embed_query(self, query: str) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            query: Standalone search query

        Returns:
            Query embedding vector
        """
        return await self.embed_text(query)


# Singleton instance
_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Get singleton embedding service instance."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
