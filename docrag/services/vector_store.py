"""
Vector Store Service
Manages vector storage in Pinecone with one namespace per document.
"""
from typing import List, Optional, Dict, Any
import structlog
from pinecone import Pinecone
from tenacity import retry, stop_after_attempt, wait_exponential

from docrag.config import Settings, get_settings
from docrag.errors import ConfigurationError, IndexingError, RetrievalError
from docrag.models.schemas import EmbeddingVector, RetrievalResult, VectorMetadata

logger = structlog.get_logger()

# Pinecone caps metadata at 40KB per vector
MAX_METADATA_TEXT_CHARS = 8000


class VectorStore:
    """Manages Pinecone vector storage; namespaces isolate documents."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        if not self.settings.pinecone_api_key:
            raise ConfigurationError("PINECONE_API_KEY is not set", provider="pinecone")
        if not self.settings.pinecone_index:
            raise ConfigurationError("PINECONE_INDEX is not set", provider="pinecone")

        self.pc = Pinecone(api_key=self.settings.pinecone_api_key)
        self.index = self.pc.Index(self.settings.pinecone_index)

        logger.info(
            "Vector store initialized",
            index=self.settings.pinecone_index
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True
    )
    async def _upsert_batch(self, batch: List[Dict[str, Any]], namespace: str) -> None:
        self.index.upsert(vectors=batch, namespace=namespace)

    async def upsert(self, namespace: str, vectors: List[EmbeddingVector]) -> int:
        """
        Store vectors in a namespace, in batches.

        Args:
            namespace: Namespace to write to (the document's file_id)
            vectors: Vectors with deterministic ids and metadata

        Returns:
            Number of vectors upserted

        Raises:
            IndexingError: If any batch cannot be written
        """
        if not namespace:
            raise IndexingError("A namespace is required for upsert", provider="pinecone")

        logger.info("Upserting vectors", namespace=namespace, count=len(vectors))

        records = [self._to_record(v) for v in vectors]
        batch_size = self.settings.upsert_batch_size
        total_batches = (len(records) + batch_size - 1) // batch_size
        total_upserted = 0

        for i in range(0, len(records), batch_size):
            batch = records[i:i + batch_size]
            try:
                await self._upsert_batch(batch, namespace)
            except Exception as e:
                logger.error("Upsert failed", namespace=namespace, error=str(e))
                raise IndexingError(f"Failed to upsert vectors: {e}", provider="pinecone") from e
            total_upserted += len(batch)

            logger.info(
                "Batch upserted",
                batch_num=i // batch_size + 1,
                total_batches=total_batches,
                count=len(batch)
            )

        logger.info(
            "Vectors upserted successfully",
            total=total_upserted,
            namespace=namespace
        )

        return total_upserted

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        metadata_filter: Optional[Dict[str, Any]] = None
    ) -> List[RetrievalResult]:
        """
        Similarity search within one namespace.

        Args:
            namespace: Namespace to search (the document's file_id)
            vector: Query vector
            top_k: Number of results to return
            metadata_filter: Optional Pinecone metadata filter

        Returns:
            Results in the store's order (descending score)

        Raises:
            RetrievalError: If the query fails
        """
        logger.info(
            "Querying vectors",
            namespace=namespace,
            top_k=top_k
        )

        try:
            results = self.index.query(
                namespace=namespace,
                vector=vector,
                filter=metadata_filter,
                top_k=top_k,
                include_metadata=True
            )
        except Exception as e:
            logger.error("Query failed", namespace=namespace, error=str(e))
            raise RetrievalError(f"Failed to query vectors: {e}", provider="pinecone") from e

        retrieval_results = [self._to_result(match, namespace) for match in results.matches]

        logger.info("Query complete", results=len(retrieval_results))
        return retrieval_results

    async def delete_all(self, namespace: str) -> bool:
        """
        Delete every vector in a namespace.

        Args:
            namespace: Namespace to clear (the document's file_id)

        Returns:
            True if successful
        """
        logger.info("Deleting namespace", namespace=namespace)

        try:
            self.index.delete(namespace=namespace, delete_all=True)
        except Exception as e:
            raise IndexingError(f"Failed to delete vectors: {e}", provider="pinecone") from e

        logger.info("Namespace deleted", namespace=namespace)
        return True

    async def get_stats(self, namespace: str) -> Dict[str, Any]:
        """
        Get vector stats for a namespace.

        Args:
            namespace: Namespace to describe

        Returns:
            Stats dictionary
        """
        stats = self.index.describe_index_stats()

        namespace_stats = stats.namespaces.get(namespace)
        return {
            "namespace": namespace,
            "vector_count": getattr(namespace_stats, "vector_count", 0) if namespace_stats else 0,
            "dimension": stats.dimension
        }

    async def check_connection(self) -> bool:
        """True if the configured index can be described."""
        try:
            self.pc.describe_index(self.settings.pinecone_index)
            return True
        except Exception as e:
            logger.error("Pinecone connection check failed", error=str(e))
            return False

    def _to_record(self, vector: EmbeddingVector) -> Dict[str, Any]:
        # Pinecone rejects null metadata values
        metadata = vector.metadata.model_dump(exclude_none=True)
        if len(metadata["text"]) > MAX_METADATA_TEXT_CHARS:
            logger.warning("Metadata text truncated", id=vector.id, length=len(metadata["text"]))
            metadata["text"] = metadata["text"][:MAX_METADATA_TEXT_CHARS] + "..."
        return {"id": vector.id, "values": vector.values, "metadata": metadata}

    def _to_result(self, match: Any, namespace: str) -> RetrievalResult:
        metadata = match.metadata or {}
        page_number = metadata.get("page_number")
        return RetrievalResult(
            id=match.id,
            score=match.score or 0.0,
            metadata=VectorMetadata(
                file_id=metadata.get("file_id", namespace),
                text=metadata.get("text", ""),
                page_number=int(page_number) if page_number is not None else None,
                chunk_index=int(metadata.get("chunk_index", 0)),
                heading=metadata.get("heading"),
            )
        )


# Singleton instance
_vector_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    """Get singleton vector store instance."""
    global _vector_store
    if _vector_store is None:
        _vector_store = VectorStore()
    return _vector_store
