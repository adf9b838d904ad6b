"""
FastAPI Application
Document ingestion (PDF -> markdown -> chunks -> vectors) and grounded Q&A.
"""
import logging
import time
from typing import List, Literal, Optional

import structlog
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from docrag.config import get_settings
from docrag.errors import (
    ConfigurationError,
    DocRAGError,
    DocumentNotFoundError,
    ExtractionError,
    IngestionTimeoutError,
)
from docrag.models.schemas import ConversationTurn, ProcessingStatus, RetrievedChunk
from docrag.services.document_cache import get_document_cache, select_context_source
from docrag.services.document_tools import ReadingLevel, SummaryType, get_document_tools
from docrag.services.file_handler import get_file_handler
from docrag.services.ingestion_pipeline import get_ingestion_pipeline
from docrag.services.progress_tracker import get_progress_tracker
from docrag.services.rag_service import get_rag_service
from docrag.services.vector_store import get_vector_store

settings = get_settings()

# Configure logging for terminal readability
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.dev.ConsoleRenderer()  # Human-readable format in terminal
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()

# Create FastAPI app
app = FastAPI(
    title="Document RAG Service",
    description="Ingest PDFs into a vector index and ask grounded questions about them",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─────────────────────────────────────────────────────────────
# Request/Response Models
# ─────────────────────────────────────────────────────────────

class IngestResponse(BaseModel):
    success: bool
    file_id: str
    markdown: str            # Full accessible view of the document
    total_pages: int
    total_chunks: int
    processing_time_ms: int
    failed_batches: List[int] = []


class QueryRequest(BaseModel):
    file_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1)
    conversation_history: List[ConversationTurn] = []
    top_k: Optional[int] = Field(default=None, ge=1, le=50)


class QueryResponse(BaseModel):
    success: bool
    answer: str
    retrieved_chunks: List[RetrievedChunk]
    contextualized_query: str
    timestamp: int


class SummarizeRequest(BaseModel):
    text: Optional[str] = None      # Inline document text
    file_id: Optional[str] = None   # Or an ingested document
    summary_type: SummaryType = "brief"
    simplify: bool = False
    reading_level: ReadingLevel = "high-school"


class AnalyzeRequest(BaseModel):
    text: Optional[str] = None
    file_id: Optional[str] = None
    analysis_type: Literal["key-concepts", "study-questions"]
    question_count: int = 5


def _status_code_for(error: Exception) -> int:
    if isinstance(error, ExtractionError):
        return 422
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, ConfigurationError):
        return 503
    if isinstance(error, IngestionTimeoutError):
        return 504
    return 500


def _now_ms() -> int:
    return int(time.time() * 1000)


def _check_inline_text(text: Optional[str]) -> None:
    if text and len(text) > settings.max_inline_document_chars:
        raise HTTPException(
            status_code=400,
            detail="Document text is too long. Please provide a shorter excerpt."
        )


# ─────────────────────────────────────────────────────────────
# API 1: Ingest PDF
# ─────────────────────────────────────────────────────────────

@app.post("/ingest", response_model=IngestResponse)
async def ingest_file(
    file: UploadFile = File(...),
    file_id: Optional[str] = Form(default=None)
):
    """
    Ingest a PDF: parse, convert to markdown, chunk, embed and index.
    """
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file provided")

    try:
        get_file_handler().detect_file_type(content, file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Only PDF files are supported: {str(e)}")

    logger.info(f"Starting ingestion for file '{file.filename}' ({len(content)} bytes)")

    try:
        result = await get_ingestion_pipeline().ingest(content, file_id=file_id, filename=file.filename)
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=f"Ingestion failed: {str(e)}")

    return IngestResponse(success=True, **result.model_dump())


# ─────────────────────────────────────────────────────────────
# API 2: Query a Document
# ─────────────────────────────────────────────────────────────

@app.post("/query", response_model=QueryResponse)
async def query_document(request: QueryRequest):
    """
    Answer a question about an ingested document.
    """
    try:
        result = await get_rag_service().answer(
            file_id=request.file_id,
            question=request.question,
            history=request.conversation_history,
            top_k=request.top_k,
        )
    except DocRAGError as e:
        logger.error(f"Query failed: {str(e)}")
        raise HTTPException(status_code=_status_code_for(e), detail=f"Query failed: {str(e)}")

    return QueryResponse(success=True, timestamp=_now_ms(), **result.model_dump())


# ─────────────────────────────────────────────────────────────
# Document Tools
# ─────────────────────────────────────────────────────────────

@app.post("/summarize")
async def summarize_document(request: SummarizeRequest):
    """Summarize an ingested document or inline text."""
    _check_inline_text(request.text)

    try:
        source = select_context_source(request.file_id, request.text, get_document_cache())
        tools = get_document_tools()
        summary = await tools.summarize(source, request.summary_type)
        if request.simplify:
            summary = await tools.simplify_text(summary, request.reading_level)
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=f"Failed to summarize document: {str(e)}")

    return {
        "success": True,
        "summary": summary,
        "summary_type": request.summary_type,
        "simplified": request.simplify,
        "reading_level": request.reading_level if request.simplify else None,
        "timestamp": _now_ms()
    }


@app.post("/analyze")
async def analyze_document(request: AnalyzeRequest):
    """Extract key concepts or generate study questions."""
    _check_inline_text(request.text)

    if request.analysis_type == "study-questions" and not 1 <= request.question_count <= 20:
        raise HTTPException(status_code=400, detail="question_count must be between 1 and 20")

    try:
        source = select_context_source(request.file_id, request.text, get_document_cache())
        tools = get_document_tools()
        if request.analysis_type == "key-concepts":
            result = await tools.extract_key_concepts(source)
        else:
            result = await tools.generate_study_questions(source, request.question_count)
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=f"Failed to analyze document: {str(e)}")

    return {
        "success": True,
        "analysis_type": request.analysis_type,
        "result": result,
        "timestamp": _now_ms()
    }


@app.post("/extract-text")
async def extract_text(file: UploadFile = File(...)):
    """Extract page-marked markdown from a file with the multimodal model."""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No file provided")

    try:
        text = await get_document_tools().extract_structured_text(
            content,
            file.content_type or "application/pdf",
            file.filename
        )
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=f"Failed to extract text: {str(e)}")

    return {"success": True, "text": text, "timestamp": _now_ms()}


# ─────────────────────────────────────────────────────────────
# Helper Endpoints
# ─────────────────────────────────────────────────────────────

@app.get("/documents/{file_id}/status", response_model=ProcessingStatus)
async def document_status(file_id: str):
    """Latest ingestion progress for a document."""
    status = get_progress_tracker().get(file_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return status


@app.get("/documents/{file_id}/stats")
async def document_stats(file_id: str):
    """Vector count for a document's namespace."""
    try:
        return await get_vector_store().get_stats(file_id)
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=str(e))


@app.delete("/documents/{file_id}")
async def delete_document(file_id: str):
    """Delete all vectors of a document."""
    try:
        await get_vector_store().delete_all(file_id)
    except DocRAGError as e:
        raise HTTPException(status_code=_status_code_for(e), detail=f"Failed to delete vectors: {str(e)}")

    get_document_cache().delete(file_id)
    get_progress_tracker().clear(file_id)
    return {"success": True, "file_id": file_id}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/index")
async def index_health():
    """Check the Pinecone index is reachable."""
    try:
        connected = await get_vector_store().check_connection()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "healthy" if connected else "unavailable", "index": settings.pinecone_index}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("docrag.main:app", host="0.0.0.0", port=8000, reload=True)
