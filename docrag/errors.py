"""
Exception hierarchy for the document RAG pipeline.

    DocRAGError
    +-- ExtractionError          (document cannot be parsed; fatal)
    +-- BatchConversionError     (one batch failed; recovered with raw text)
    |   +-- QuotaExceededError   (429 / quota; retried with backoff first)
    +-- GenerationError          (final answer / tool generation failed)
    +-- EmbeddingError           (fatal to ingestion)
    +-- IndexingError            (fatal to ingestion)
    +-- ContextualizationError   (recovered with the original question)
    +-- RetrievalError           (fatal to the query)
    +-- ConfigurationError       (missing credentials / index name)
    +-- IngestionTimeoutError    (overall wall-clock budget exceeded)
    +-- DocumentNotFoundError    (no cached document and no inline text)
"""
from typing import Optional


class DocRAGError(Exception):
    """Base error. ``provider`` names the external service involved, if any."""

    def __init__(self, message: str = "An unexpected error occurred", provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)

    def __str__(self) -> str:
        if self.provider:
            return f"[{self.provider}] {self.message}"
        return self.message


class ExtractionError(DocRAGError):
    pass


class BatchConversionError(DocRAGError):
    pass


class QuotaExceededError(BatchConversionError):
    pass


class GenerationError(DocRAGError):
    pass


class EmbeddingError(DocRAGError):
    pass


class IndexingError(DocRAGError):
    pass


class ContextualizationError(DocRAGError):
    pass


class RetrievalError(DocRAGError):
    pass


class ConfigurationError(DocRAGError):
    pass


class IngestionTimeoutError(DocRAGError):
    pass


class DocumentNotFoundError(DocRAGError):
    pass
