"""
Chunking Service
Splits stitched markdown into retrieval-sized chunks along heading and
paragraph boundaries.
"""
import re
from typing import Iterator, List, Optional, Tuple
import structlog

from docrag.config import Settings, get_settings
from docrag.models.schemas import Chunk
from docrag.services.page_attributor import strip_page_markers

logger = structlog.get_logger()

HEADING_LINE_RE = re.compile(r"^#{1,6}[ \t]", re.MULTILINE)
HEADING_TEXT_RE = re.compile(r"#{1,6}[ \t]+([^\n]*)")
PARAGRAPH_SEPARATOR_RE = re.compile(r"\n[ \t]*(?:\n[ \t]*)+")


class ChunkingService:
    """Chunks markdown by heading sections, then by paragraphs."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def chunk_markdown(self, markdown: str, max_chunk_size: Optional[int] = None) -> List[Chunk]:
        """
        Split markdown into chunks that respect headings and paragraphs.

        A section that fits becomes one chunk. A larger section is filled
        paragraph by paragraph; a single paragraph longer than the limit is
        kept whole rather than cut. Spans between chunks hold only whitespace
        or page markers.

        Args:
            markdown: Stitched markdown document
            max_chunk_size: Maximum characters per chunk

        Returns:
            Chunks in reading order; offsets index into ``markdown``
        """
        max_size = max_chunk_size or self.settings.max_chunk_size
        if not markdown.strip():
            return []

        chunks: List[Chunk] = []
        for start, end in self._sections(markdown):
            if not markdown[start:end].strip():
                continue

            heading = self._section_heading(markdown[start:end])
            if end - start <= max_size:
                chunks.append(self._make_chunk(markdown, start, end, heading))
                continue

            chunks.extend(self._split_section(markdown, start, end, heading, max_size))

        # A span holding nothing but page markers has no retrievable content;
        # the markers still precede the next chunk for page attribution.
        chunks = [chunk for chunk in chunks if strip_page_markers(chunk.text)]

        logger.info("Chunking complete", chunks=len(chunks), max_chunk_size=max_size)
        return chunks

    def _sections(self, markdown: str) -> Iterator[Tuple[int, int]]:
        """Yield (start, end) spans that each begin at a heading line."""
        boundaries = sorted({0, *(m.start() for m in HEADING_LINE_RE.finditer(markdown))})
        boundaries.append(len(markdown))
        return zip(boundaries, boundaries[1:])

    def _section_heading(self, section: str) -> Optional[str]:
        match = HEADING_TEXT_RE.match(section)
        if not match:
            return None
        return match.group(1).strip() or None

    def _paragraphs(self, markdown: str, start: int, end: int) -> Iterator[Tuple[int, int]]:
        """Yield non-blank paragraph spans between blank-line separators."""
        cursor = start
        for sep in PARAGRAPH_SEPARATOR_RE.finditer(markdown, start, end):
            if markdown[cursor:sep.start()].strip():
                yield cursor, sep.start()
            cursor = sep.end()
        if markdown[cursor:end].strip():
            yield cursor, end

    def _split_section(
        self,
        markdown: str,
        start: int,
        end: int,
        heading: Optional[str],
        max_size: int,
    ) -> List[Chunk]:
        chunks = []
        chunk_start: Optional[int] = None
        chunk_end = start

        for para_start, para_end in self._paragraphs(markdown, start, end):
            if chunk_start is not None and para_end - chunk_start > max_size:
                chunks.append(self._make_chunk(markdown, chunk_start, chunk_end, heading))
                chunk_start = None
            if chunk_start is None:
                chunk_start = para_start
            chunk_end = para_end

        if chunk_start is not None:
            chunks.append(self._make_chunk(markdown, chunk_start, chunk_end, heading))
        return chunks

    def _make_chunk(self, markdown: str, start: int, end: int, heading: Optional[str]) -> Chunk:
        segment = markdown[start:end]
        trimmed_start = start + len(segment) - len(segment.lstrip())
        trimmed_end = end - (len(segment) - len(segment.rstrip()))
        return Chunk(
            text=markdown[trimmed_start:trimmed_end],
            start_char=trimmed_start,
            end_char=trimmed_end,
            heading=heading,
        )

    def get_chunk_for_embedding(self, chunk: Chunk) -> str:
        """
        Prepare chunk text for embedding.
        Page markers are dropped and the section heading is prepended.
        """
        parts = []

        if chunk.heading:
            parts.append(f"Section: {chunk.heading}")

        parts.append(strip_page_markers(chunk.text))

        return "\n\n".join(parts)


# Singleton
_chunking_service: Optional[ChunkingService] = None


def get_chunking_service() -> ChunkingService:
    """Get singleton chunking service instance."""
    global _chunking_service
    if _chunking_service is None:
        _chunking_service = ChunkingService()
    return _chunking_service
