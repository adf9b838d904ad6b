"""
Data models for the RAG pipeline.
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Literal, Union
from dataclasses import dataclass


PAGE_BREAK_TEMPLATE = "[PAGE_BREAK_{page}]"


class ExtractedDocument(BaseModel):
    """Plain text pulled out of an uploaded document."""
    text: str
    num_pages: int


class Batch(BaseModel):
    """A contiguous page range converted to markdown as one unit."""
    batch_number: int
    start_page: int
    end_page: int
    text: str
    markdown: Optional[str] = None  # Set by the converter (fallback = raw text)
    error: Optional[str] = None     # Set only when conversion failed


class ProcessedDocument(BaseModel):
    """Output of extract -> split -> convert -> stitch."""
    markdown: str
    num_pages: int
    batches: List[Batch]
    failed_batches: List[int] = []


class Chunk(BaseModel):
    """Retrieval-sized span of the stitched markdown."""
    text: str
    start_char: int
    end_char: int
    heading: Optional[str] = None


class VectorMetadata(BaseModel):
    """Metadata stored next to each vector in the index."""
    file_id: str
    text: str
    page_number: Optional[int] = None
    chunk_index: int
    heading: Optional[str] = None


class EmbeddingVector(BaseModel):
    id: str  # "{file_id}_chunk_{chunk_index}"
    values: List[float]
    metadata: VectorMetadata


class RetrievalResult(BaseModel):
    """Model for search results returned from vector query."""
    id: str
    score: float
    metadata: VectorMetadata


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class ProcessingStatus(BaseModel):
    """Progress snapshot for an ingestion run."""
    stage: Literal[
        "parsing", "batching", "converting", "chunking",
        "embedding", "indexing", "complete", "error",
    ]
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    current_batch: Optional[int] = None
    total_batches: Optional[int] = None


class ContextualizedQuery(BaseModel):
    """
    Result of query contextualization.
    When ``fell_back`` is True the original question was used and ``error``
    says why.
    """
    query: str
    fell_back: bool = False
    error: Optional[str] = None


class RetrievedChunk(BaseModel):
    text: str
    page_number: Optional[int] = None
    score: float


class IngestionResult(BaseModel):
    file_id: str
    markdown: str
    total_pages: int
    total_chunks: int
    processing_time_ms: int
    failed_batches: List[int] = []


class QueryResult(BaseModel):
    answer: str
    retrieved_chunks: List[RetrievedChunk]
    contextualized_query: str


# ─────────────────────────────────────────────────────────────
# Context sources for whole-document tools
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CachedContext:
    """Document previously ingested and held in the document cache."""
    handle: str


@dataclass(frozen=True)
class InlineContext:
    """Document text supplied directly by the caller."""
    text: str


ContextSource = Union[CachedContext, InlineContext]


@dataclass(frozen=True)
class Attachment:
    """Binary payload sent alongside a generation prompt."""
    data_b64: str
    mime_type: str
    filename: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")
