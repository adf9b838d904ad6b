"""
Ingestion Pipeline
extract -> split -> convert -> stitch -> chunk -> embed -> index
"""
import asyncio
import time
import uuid
from typing import Optional
import structlog

from docrag.config import Settings, get_settings
from docrag.errors import DocRAGError, IngestionTimeoutError
from docrag.models.schemas import Batch, IngestionResult, ProcessedDocument, ProcessingStatus
from docrag.services.batch_converter import BatchConverter, get_batch_converter
from docrag.services.batch_splitter import create_batches
from docrag.services.chunking_service import ChunkingService, get_chunking_service
from docrag.services.document_cache import DocumentCache, get_document_cache
from docrag.services.document_parser import DocumentParser, get_document_parser
from docrag.services.indexing_service import IndexingService, get_indexing_service
from docrag.services.progress_tracker import ProgressTracker, get_progress_tracker
from docrag.services.stitcher import stitch_batches

logger = structlog.get_logger()

# Share of overall progress covered by batch conversion
_CONVERT_START, _CONVERT_END = 15, 60


def generate_file_id() -> str:
    return f"pdf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"


class IngestionPipeline:
    """Runs one document from raw bytes to indexed vectors."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        document_parser: Optional[DocumentParser] = None,
        batch_converter: Optional[BatchConverter] = None,
        chunking_service: Optional[ChunkingService] = None,
        indexing_service: Optional[IndexingService] = None,
        progress_tracker: Optional[ProgressTracker] = None,
        document_cache: Optional[DocumentCache] = None,
    ):
        self.settings = settings or get_settings()
        self.document_parser = document_parser or get_document_parser()
        self.batch_converter = batch_converter or get_batch_converter()
        self.chunking_service = chunking_service or get_chunking_service()
        self.indexing_service = indexing_service or get_indexing_service()
        self.progress_tracker = progress_tracker or get_progress_tracker()
        self.document_cache = document_cache or get_document_cache(self.settings)

    def _report(self, file_id: str, stage: str, progress: int, message: str, **extra) -> None:
        self.progress_tracker.update(
            file_id,
            ProcessingStatus(stage=stage, progress=progress, message=message, **extra),
        )

    async def process_document(
        self,
        data: bytes,
        file_id: str,
        filename: Optional[str] = None,
    ) -> ProcessedDocument:
        """
        Extract, split, convert and stitch a document into markdown.

        Raises:
            ExtractionError: If the document cannot be parsed
        """
        self._report(file_id, "parsing", 5, "Parsing PDF...")
        extracted = await self.document_parser.parse(data, filename)
        logger.info("Parsed PDF", pages=extracted.num_pages, characters=len(extracted.text))

        self._report(file_id, "batching", 10, "Creating page batches...")
        batches = create_batches(extracted.text, extracted.num_pages, self.settings.pages_per_batch)
        total = len(batches)

        self._report(
            file_id, "converting", _CONVERT_START,
            f"Converting {total} batches to Markdown...",
            current_batch=0, total_batches=total,
        )

        def on_progress(batch: Batch, completed: int, total_batches: int) -> None:
            progress = _CONVERT_START + (_CONVERT_END - _CONVERT_START) * completed // max(total_batches, 1)
            self._report(
                file_id, "converting", progress,
                f"Converted batch {batch.batch_number} ({completed}/{total_batches})",
                current_batch=completed, total_batches=total_batches,
            )

        failed_batches = await self.batch_converter.convert_batches(batches, on_progress=on_progress)

        markdown = stitch_batches(batches)
        logger.info("Stitched batches", characters=len(markdown), failed_batches=failed_batches)

        return ProcessedDocument(
            markdown=markdown,
            num_pages=extracted.num_pages,
            batches=batches,
            failed_batches=failed_batches,
        )

    async def ingest(
        self,
        data: bytes,
        file_id: Optional[str] = None,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> IngestionResult:
        """
        Ingest a document within a wall-clock budget.

        Args:
            data: Raw PDF bytes
            file_id: Caller-supplied id; generated when omitted
            filename: Original filename (logging / metadata)
            timeout: Seconds allowed for the whole run

        Raises:
            IngestionTimeoutError: If the budget is exhausted
            ExtractionError, EmbeddingError, IndexingError: Fatal stage failures
        """
        file_id = file_id or generate_file_id()
        timeout = timeout if timeout is not None else self.settings.ingestion_timeout_seconds

        logger.info("Stage: Starting ingestion", file_id=file_id, filename=filename, size_bytes=len(data))

        try:
            return await asyncio.wait_for(self._ingest(data, file_id, filename), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._report(file_id, "error", 100, f"Ingestion timed out after {timeout}s")
            logger.error("Stage: Ingestion timed out", file_id=file_id, timeout=timeout)
            raise IngestionTimeoutError(f"Ingestion exceeded {timeout}s") from e
        except DocRAGError as e:
            self._report(file_id, "error", 100, str(e))
            logger.error("Stage: Ingestion failed", file_id=file_id, error=str(e))
            raise

    async def _ingest(self, data: bytes, file_id: str, filename: Optional[str]) -> IngestionResult:
        started = time.monotonic()

        processed = await self.process_document(data, file_id, filename)

        self._report(file_id, "chunking", 65, "Creating semantic chunks...")
        chunks = self.chunking_service.chunk_markdown(processed.markdown)

        self._report(file_id, "embedding", 75, f"Embedding {len(chunks)} chunks...")
        await self.indexing_service.index_chunks(
            file_id,
            processed.markdown,
            chunks,
            on_embedded=lambda count: self._report(file_id, "indexing", 90, f"Storing {count} vectors..."),
        )

        self.document_cache.set(file_id, processed.markdown)

        processing_time_ms = int((time.monotonic() - started) * 1000)
        self._report(file_id, "complete", 100, f"Indexed {len(chunks)} chunks")
        logger.info(
            "Stage: Ingestion complete",
            file_id=file_id,
            total_chunks=len(chunks),
            processing_time_ms=processing_time_ms
        )

        return IngestionResult(
            file_id=file_id,
            markdown=processed.markdown,
            total_pages=processed.num_pages,
            total_chunks=len(chunks),
            processing_time_ms=processing_time_ms,
            failed_batches=processed.failed_batches,
        )


# Singleton
_ingestion_pipeline: Optional[IngestionPipeline] = None


def get_ingestion_pipeline() -> IngestionPipeline:
    """Get singleton ingestion pipeline instance."""
    global _ingestion_pipeline
    if _ingestion_pipeline is None:
        _ingestion_pipeline = IngestionPipeline()
    return _ingestion_pipeline
