"""
Indexing Service
Turns chunks into embedding vectors and writes them to the document's namespace.
"""
from typing import Callable, List, Optional
import structlog

from docrag.models.schemas import Chunk, EmbeddingVector, VectorMetadata
from docrag.services.embedding_service import EmbeddingService, get_embedding_service
from docrag.services.page_attributor import attribute_pages
from docrag.services.vector_store import VectorStore, get_vector_store

logger = structlog.get_logger()


def vector_id(file_id: str, chunk_index: int) -> str:
    """Deterministic id so re-ingestion overwrites instead of duplicating."""
    return f"{file_id}_chunk_{chunk_index}"


def build_vectors(
    file_id: str,
    markdown: str,
    chunks: List[Chunk],
    embeddings: List[List[float]],
) -> List[EmbeddingVector]:
    """Pair chunks with their embeddings and page-attributed metadata."""
    if len(chunks) != len(embeddings):
        raise ValueError(f"Got {len(embeddings)} embeddings for {len(chunks)} chunks")

    pages = attribute_pages(markdown, chunks)
    return [
        EmbeddingVector(
            id=vector_id(file_id, idx),
            values=embedding,
            metadata=VectorMetadata(
                file_id=file_id,
                text=chunk.text,
                page_number=page,
                chunk_index=idx,
                heading=chunk.heading,
            ),
        )
        for idx, (chunk, embedding, page) in enumerate(zip(chunks, embeddings, pages))
    ]


class IndexingService:
    """Embeds chunks and upserts them under namespace = file_id."""

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
    ):
        self.embedding_service = embedding_service or get_embedding_service()
        self.vector_store = vector_store or get_vector_store()

    async def index_chunks(
        self,
        file_id: str,
        markdown: str,
        chunks: List[Chunk],
        on_embedded: Optional[Callable[[int], None]] = None,
    ) -> int:
        """
        Embed and index every chunk of a document.
        ``on_embedded`` is called with the vector count before the upsert.

        Raises:
            EmbeddingError: If embeddings cannot be generated
            IndexingError: If vectors cannot be written
        """
        if not chunks:
            logger.warning("No chunks to index", file_id=file_id)
            return 0

        logger.info("Stage: Generating vector embeddings", file_id=file_id, chunks=len(chunks))
        embeddings = await self.embedding_service.embed_chunks(chunks)

        vectors = build_vectors(file_id, markdown, chunks, embeddings)
        if on_embedded:
            on_embedded(len(vectors))

        logger.info("Stage: Storing vectors in Pinecone", file_id=file_id)
        return await self.vector_store.upsert(file_id, vectors)


# Singleton instance
_indexing_service: Optional[IndexingService] = None


def get_indexing_service() -> IndexingService:
    """Get singleton indexing service instance."""
    global _indexing_service
    if _indexing_service is None:
        _indexing_service = IndexingService()
    return _indexing_service
