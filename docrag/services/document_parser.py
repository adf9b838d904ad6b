"""
Document Parser Service
Extracts plain text and a page count from uploaded documents using unstructured.io.
"""
import asyncio
import io
from typing import Dict, List, Optional
import structlog

from unstructured.partition.auto import partition
from unstructured.documents.elements import Element, PageBreak

from docrag.errors import ExtractionError
from docrag.models.schemas import ExtractedDocument

logger = structlog.get_logger()


class DocumentParser:
    """Parses document buffers into page-ordered plain text."""

    async def parse(
        self,
        data: bytes,
        filename: Optional[str] = None,
        content_type: str = "application/pdf",
    ) -> ExtractedDocument:
        """
        Parse a document and extract its text.

        Args:
            data: Raw document bytes
            filename: Original filename (metadata only)
            content_type: MIME type of the buffer

        Returns:
            ExtractedDocument with the full text and page count

        Raises:
            ExtractionError: If the document cannot be parsed at all
        """
        logger.info("Parsing document", filename=filename, size_bytes=len(data))

        try:
            elements = await asyncio.to_thread(
                partition,
                file=io.BytesIO(data),
                content_type=content_type,
                metadata_filename=filename,
                strategy="fast",
                include_page_breaks=True,
            )
        except Exception as e:
            logger.error("Failed to parse document", error=str(e), filename=filename)
            raise ExtractionError(f"Failed to parse document: {e}", provider="unstructured") from e

        document = self.elements_to_document(elements)

        logger.info(
            "Document parsed successfully",
            element_count=len(elements),
            num_pages=document.num_pages,
            characters=len(document.text)
        )
        return document

    def elements_to_document(self, elements: List[Element]) -> ExtractedDocument:
        """Group element text by page and join pages with a blank line."""
        pages: Dict[int, List[str]] = {}
        current_page = 1

        for el in elements:
            if isinstance(el, PageBreak):
                current_page += 1
                continue

            page_number = getattr(getattr(el, "metadata", None), "page_number", None)
            if page_number:
                current_page = page_number

            text = str(getattr(el, "text", "") or "").strip()
            pages.setdefault(current_page, [])
            if text:
                pages[current_page].append(text)

        num_pages = max(pages) if pages else 0
        page_texts = ["\n".join(pages.get(p, [])) for p in range(1, num_pages + 1)]

        return ExtractedDocument(text="\n\n".join(page_texts).strip(), num_pages=num_pages)


# Singleton instance
_document_parser: Optional[DocumentParser] = None


def get_document_parser() -> DocumentParser:
    """Get singleton document parser instance."""
    global _document_parser
    if _document_parser is None:
        _document_parser = DocumentParser()
    return _document_parser
