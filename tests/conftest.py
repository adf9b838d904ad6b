"""
Shared Test Fixtures for the Document RAG Service

This file contains:
- FastAPI TestClient setup
- Settings that never touch real credentials or real backoff
- Deterministic stand-ins for the chat model, the embeddings API and Pinecone
- Test data generators (page-structured documents)
"""
import asyncio
import math
import re
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, Generator, Iterable, List, Optional
from unittest.mock import AsyncMock, Mock, patch
import os
import sys

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from docrag.config import Settings
from docrag.errors import GenerationError
from docrag.models.schemas import ExtractedDocument
from docrag.services.answer_generator import AnswerGenerator
from docrag.services.batch_converter import BatchConverter
from docrag.services.chunking_service import ChunkingService
from docrag.services.contextualizer import QueryContextualizer
from docrag.services.document_cache import DocumentCache
from docrag.services.embedding_service import EmbeddingService
from docrag.services.indexing_service import IndexingService
from docrag.services.ingestion_pipeline import IngestionPipeline
from docrag.services.progress_tracker import ProgressTracker
from docrag.services.rag_service import RAGService
from docrag.services.retriever import Retriever
from docrag.services.vector_store import VectorStore


# ═══════════════════════════════════════════════════════════════
# FASTAPI CLIENT FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Synchronous FastAPI test client."""
    from docrag.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Asynchronous FastAPI test client."""
    from docrag.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ═══════════════════════════════════════════════════════════════
# SETTINGS
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings() -> Settings:
    """Settings with fake credentials, no quota backoff and generous limits."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        pinecone_api_key="pc-test",
        pinecone_index="test-index",
        quota_backoff_seconds=0,
        batch_timeout_seconds=5.0,
        ingestion_timeout_seconds=30.0,
        max_requests_per_minute=100,
        embedding_dimensions=64,
    )


# ═══════════════════════════════════════════════════════════════
# TEST DOUBLES
# ═══════════════════════════════════════════════════════════════

PAGE_HEADLINE_RE = re.compile(r"Page (\d+)")
PAGE_RANGE_RE = re.compile(r"pages (\d+) to (\d+)")
CONVERSION_MARKER = "Text to convert:\n"


def convert_pages(text: str) -> str:
    """Markdown a well-behaved model would produce: a marker and heading per page."""
    blocks = []
    for paragraph in (p for p in text.split("\n\n") if p.strip()):
        match = PAGE_HEADLINE_RE.search(paragraph)
        if match:
            page = int(match.group(1))
            blocks.append(f"[PAGE_BREAK_{page}]\n\n## Page {page}\n\n{paragraph.strip()}")
        else:
            blocks.append(paragraph.strip())
    return "\n\n".join(blocks)


class ScriptedGenerationService:
    """
    Stands in for GenerationService.

    Conversion prompts are answered with ``convert_pages``; batches are
    addressed by their start page. Any other prompt gets ``reply``.
    """

    def __init__(
        self,
        fail_pages: Iterable[int] = (),
        hang_pages: Iterable[int] = (),
        delays: Optional[Dict[int, float]] = None,
        reply: str = "Zebras migrate across the savanna (Page 37).",
    ):
        self.fail_pages = set(fail_pages)
        self.hang_pages = set(hang_pages)
        self.delays = delays or {}
        self.reply = reply
        self.prompts: List[str] = []
        self.completed: List[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate_with_retry(self, prompt: str, attachment=None) -> str:
        self.prompts.append(prompt)
        if CONVERSION_MARKER not in prompt:
            return self.reply

        start_page = int(PAGE_RANGE_RE.search(prompt).group(1))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if start_page in self.delays:
                await asyncio.sleep(self.delays[start_page])
            if start_page in self.hang_pages:
                await asyncio.sleep(3600)
            if start_page in self.fail_pages:
                raise GenerationError("model unavailable", provider="openai")
            self.completed.append(start_page)
            return convert_pages(prompt.split(CONVERSION_MARKER, 1)[1])
        finally:
            self.in_flight -= 1

    @property
    def conversion_prompts(self) -> List[str]:
        return [p for p in self.prompts if CONVERSION_MARKER in p]


VOCABULARY = {
    word: position
    for position, word in enumerate((
        "zebra", "migration", "patterns", "savanna",
        "photosynthesis", "desert", "plants",
        "printing", "press", "history",
        "chapter", "material",
    ))
}


def keyword_vector(text: str, dimensions: int = 64) -> List[float]:
    """Bag-of-words counts over a small fixed vocabulary; other words are ignored."""
    vector = [0.0] * dimensions
    for word in re.findall(r"[a-z]+", text.lower()):
        if word in VOCABULARY:
            vector[VOCABULARY[word]] += 1.0
    return vector


def keyword_embeddings_client(dimensions: int = 64) -> Mock:
    """AsyncOpenAI stand-in whose embeddings.create returns keyword vectors."""

    async def create(model, input, dimensions=dimensions, **kwargs):
        return Mock(data=[Mock(embedding=keyword_vector(text, dimensions)) for text in input])

    client = Mock()
    client.embeddings.create = AsyncMock(side_effect=create)
    return client


def _cosine(a: List[float], b: List[float]) -> float:
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if not norm:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / norm


class InMemoryIndex:
    """The subset of a Pinecone Index used by VectorStore."""

    def __init__(self):
        self.namespaces: Dict[str, Dict[str, dict]] = {}
        self.upsert_calls: List[int] = []

    def upsert(self, vectors, namespace):
        self.upsert_calls.append(len(vectors))
        store = self.namespaces.setdefault(namespace, {})
        for record in vectors:
            store[record["id"]] = record
        return {"upserted_count": len(vectors)}

    def query(self, namespace, vector, filter=None, top_k=5, include_metadata=True):
        records = list(self.namespaces.get(namespace, {}).values())
        if filter:
            for key, condition in filter.items():
                records = [r for r in records if r["metadata"].get(key) == condition["$eq"]]
        scored = sorted(
            (SimpleNamespace(id=r["id"], score=_cosine(vector, r["values"]), metadata=r["metadata"])
             for r in records),
            key=lambda m: m.score,
            reverse=True,
        )
        return SimpleNamespace(matches=[m for m in scored if m.score > 0][:top_k])

    def delete(self, namespace, delete_all=False):
        if delete_all:
            self.namespaces.pop(namespace, None)
        return {}

    def describe_index_stats(self):
        return SimpleNamespace(
            namespaces={
                name: SimpleNamespace(vector_count=len(records))
                for name, records in self.namespaces.items()
            },
            dimension=64,
        )


# ═══════════════════════════════════════════════════════════════
# MOCK FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def mock_pinecone():
    """Mock Pinecone client for vector store tests."""
    with patch("docrag.services.vector_store.Pinecone") as mock:
        mock.return_value.Index.return_value.upsert.return_value = {"upserted_count": 10}
        mock.return_value.Index.return_value.delete.return_value = {}
        mock.return_value.Index.return_value.query.return_value = Mock(matches=[])
        yield mock


@pytest.fixture
def mock_openai_client() -> Mock:
    """AsyncOpenAI stand-in for chat completions."""
    client = Mock()
    client.chat.completions.create = AsyncMock(
        return_value=Mock(choices=[Mock(message=Mock(content="Generated text"))])
    )
    return client


@pytest.fixture
def scripted_generation() -> ScriptedGenerationService:
    return ScriptedGenerationService()


@pytest.fixture
def in_memory_index() -> InMemoryIndex:
    return InMemoryIndex()


@pytest.fixture
def vector_store(test_settings, in_memory_index) -> VectorStore:
    """Real VectorStore writing to an in-memory index."""
    with patch("docrag.services.vector_store.Pinecone") as mock:
        mock.return_value.Index.return_value = in_memory_index
        yield VectorStore(test_settings)


@pytest.fixture
def embedding_service(test_settings) -> EmbeddingService:
    """Real EmbeddingService over keyword vectors."""
    return EmbeddingService(test_settings, client=keyword_embeddings_client(test_settings.embedding_dimensions))


@pytest.fixture
def progress_tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def document_cache() -> DocumentCache:
    return DocumentCache(max_size=8, ttl=600)


def make_pipeline(
    settings: Settings,
    document: ExtractedDocument,
    generation,
    embedding_service: EmbeddingService,
    vector_store: VectorStore,
    progress_tracker: ProgressTracker,
    document_cache: DocumentCache,
) -> IngestionPipeline:
    """Ingestion pipeline with a canned parse result and offline services."""
    parser = Mock()
    parser.parse = AsyncMock(return_value=document)
    return IngestionPipeline(
        settings=settings,
        document_parser=parser,
        batch_converter=BatchConverter(generation, settings),
        chunking_service=ChunkingService(settings),
        indexing_service=IndexingService(embedding_service, vector_store),
        progress_tracker=progress_tracker,
        document_cache=document_cache,
    )


def make_rag_service(settings: Settings, generation, embedding_service, vector_store) -> RAGService:
    return RAGService(
        contextualizer=QueryContextualizer(generation),
        retriever=Retriever(embedding_service, vector_store, settings),
        answer_generator=AnswerGenerator(generation),
    )


# ═══════════════════════════════════════════════════════════════
# TEST DATA FIXTURES
# ═══════════════════════════════════════════════════════════════

PAGE_TOPICS = {
    3: "photosynthesis in desert plants",
    12: "the history of the printing press",
    37: "zebra migration patterns across the savanna",
}


def page_text(page: int, length: int = 200) -> str:
    """Fixed-length page body so proportional batching lands on page boundaries."""
    topic = PAGE_TOPICS.get(page, f"chapter material {page}")
    body = f"Page {page:02d} discusses {topic}."
    return (body + " Additional notes follow." * 20)[:length]


def make_document(num_pages: int) -> ExtractedDocument:
    """Extracted text shaped like DocumentParser output."""
    return ExtractedDocument(
        text="\n\n".join(page_text(p) for p in range(1, num_pages + 1)),
        num_pages=num_pages,
    )


@pytest.fixture
def forty_page_document() -> ExtractedDocument:
    return make_document(40)


@pytest.fixture
def sample_file_id() -> str:
    """Test document ID."""
    return "pdf_1760000000000_abc1234"


# ═══════════════════════════════════════════════════════════════
# FILE FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal valid PDF bytes for testing."""
    return b"""%PDF-1.4
1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj
2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj
3 0 obj << /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >> endobj
xref
0 4
0000000000 65535 f
0000000009 00000 n
0000000058 00000 n
0000000115 00000 n
trailer << /Size 4 /Root 1 0 R >>
startxref
196
%%EOF"""


@pytest.fixture
def corrupted_pdf_bytes() -> bytes:
    """Invalid/corrupted PDF bytes."""
    return b"This is not a valid PDF file content"
