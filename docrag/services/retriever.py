"""
Retriever
Embeds a standalone query and searches the document's namespace.
"""
from typing import List, Optional
import structlog

from docrag.config import Settings, get_settings
from docrag.errors import EmbeddingError, RetrievalError
from docrag.models.schemas import RetrievalResult
from docrag.services.embedding_service import EmbeddingService, get_embedding_service
from docrag.services.vector_store import VectorStore, get_vector_store

logger = structlog.get_logger()


class Retriever:
    """Top-K similarity search scoped to one document."""

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.embedding_service = embedding_service or get_embedding_service()
        self.vector_store = vector_store or get_vector_store()

    async def retrieve(self, file_id: str, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """
        Find the chunks of ``file_id`` most similar to ``query``.

        Results keep the store's descending-score order. An empty list means
        nothing relevant was found.

        Raises:
            RetrievalError: If embedding the query or searching fails
        """
        if not file_id:
            raise RetrievalError("file_id is required for retrieval")

        top_k = top_k or self.settings.default_top_k

        try:
            query_vector = await self.embedding_service.embed_query(query)
        except EmbeddingError as e:
            raise RetrievalError(f"Failed to embed query: {e.message}", provider=e.provider) from e

        results = await self.vector_store.query(
            namespace=file_id,
            vector=query_vector,
            top_k=top_k,
            metadata_filter={"file_id": {"$eq": file_id}},
        )

        logger.info("Retrieved chunks", file_id=file_id, count=len(results), top_k=top_k)
        return results


# Singleton
_retriever: Optional[Retriever] = None


def get_retriever() -> Retriever:
    """Get singleton retriever instance."""
    global _retriever
    if _retriever is None:
        _retriever = Retriever()
    return _retriever
