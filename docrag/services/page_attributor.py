"""
Page Attributor
Maps chunk offsets back to page numbers using [PAGE_BREAK_n] markers.
"""
import re
from typing import List, Optional

from docrag.models.schemas import Chunk

PAGE_BREAK_RE = re.compile(r"\[PAGE_BREAK_(\d+)\]")


def extract_page_number(text: str) -> Optional[int]:
    """First page marker in ``text``, or None."""
    match = PAGE_BREAK_RE.search(text)
    return int(match.group(1)) if match else None


def get_page_number_for_chunk(markdown: str, start_char: int) -> int:
    """
    Page of the last marker starting at or before ``start_char``.
    Defaults to page 1 when no marker precedes the offset.
    """
    page = 1
    # Linear scan per chunk: O(chunks x markers) overall.
    for match in PAGE_BREAK_RE.finditer(markdown):
        if match.start() > start_char:
            break
        page = int(match.group(1))
    return page


def attribute_pages(markdown: str, chunks: List[Chunk]) -> List[int]:
    """Page number for every chunk, in chunk order."""
    return [get_page_number_for_chunk(markdown, chunk.start_char) for chunk in chunks]


def strip_page_markers(text: str) -> str:
    """Remove page markers and the blank lines they leave behind."""
    return re.sub(r"\n{3,}", "\n\n", PAGE_BREAK_RE.sub("", text)).strip()
