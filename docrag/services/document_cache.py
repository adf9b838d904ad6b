"""
Document Cache
In-memory TTL cache of stitched markdown, keyed by file_id, so whole-document
tools can refer to an ingested document by handle.
"""
from typing import Optional
import structlog
from cachetools import TTLCache

from docrag.config import Settings, get_settings
from docrag.errors import DocumentNotFoundError
from docrag.models.schemas import CachedContext, ContextSource, InlineContext

logger = structlog.get_logger()


class DocumentCache:
    """TTL cache backed by ``cachetools.TTLCache``."""

    def __init__(self, max_size: int = 64, ttl: int = 3600):
        self._cache: TTLCache = TTLCache(maxsize=max_size, ttl=ttl)

    def get(self, file_id: str) -> Optional[str]:
        value = self._cache.get(file_id)
        logger.debug("cache_hit" if value is not None else "cache_miss", file_id=file_id)
        return value

    def set(self, file_id: str, markdown: str) -> None:
        self._cache[file_id] = markdown
        logger.debug("cache_set", file_id=file_id, characters=len(markdown))

    def delete(self, file_id: str) -> None:
        self._cache.pop(file_id, None)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._cache


def select_context_source(
    file_id: Optional[str],
    text: Optional[str],
    cache: DocumentCache,
) -> ContextSource:
    """
    Pick where the document text comes from, once per request.

    A cached document wins over inline text; with neither available the
    document cannot be found.
    """
    if file_id and file_id in cache:
        return CachedContext(handle=file_id)
    if text:
        return InlineContext(text=text)
    raise DocumentNotFoundError(
        f"Document '{file_id}' is not cached and no text was provided" if file_id
        else "Either file_id or text is required"
    )


def resolve_context(source: ContextSource, cache: DocumentCache) -> str:
    """Document text for a selected source."""
    if isinstance(source, InlineContext):
        return source.text
    markdown = cache.get(source.handle)
    if markdown is None:
        raise DocumentNotFoundError(f"Document '{source.handle}' expired from the cache")
    return markdown


# Singleton
_document_cache: Optional[DocumentCache] = None


def get_document_cache(settings: Optional[Settings] = None) -> DocumentCache:
    """Get singleton document cache instance."""
    global _document_cache
    if _document_cache is None:
        settings = settings or get_settings()
        _document_cache = DocumentCache(
            max_size=settings.document_cache_size,
            ttl=settings.document_cache_ttl_seconds,
        )
    return _document_cache
