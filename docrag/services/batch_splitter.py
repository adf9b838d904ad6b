"""
Batch Splitter
Divides extracted text into fixed-size page ranges for conversion.
"""
import math
from typing import List

import structlog

from docrag.models.schemas import Batch

logger = structlog.get_logger()


def create_batches(text: str, num_pages: int, pages_per_batch: int = 20) -> List[Batch]:
    """
    Split document text into page batches.

    Text is sliced proportionally using an estimated characters-per-page;
    the last batch absorbs any remainder.

    Args:
        text: Full extracted text
        num_pages: Total number of pages
        pages_per_batch: Number of pages per batch

    Returns:
        Batches ordered by batch_number, covering pages 1..num_pages
    """
    if num_pages <= 0:
        return []
    if pages_per_batch <= 0:
        raise ValueError("pages_per_batch must be a positive integer")

    chars_per_page = math.ceil(len(text) / num_pages)
    batches = []

    for i in range(0, num_pages, pages_per_batch):
        start_page = i + 1
        end_page = min(i + pages_per_batch, num_pages)

        start_char = min(i * chars_per_page, len(text))
        end_char = len(text) if end_page == num_pages else min(end_page * chars_per_page, len(text))

        batches.append(Batch(
            batch_number=i // pages_per_batch + 1,
            start_page=start_page,
            end_page=end_page,
            text=text[start_char:end_char],
        ))

    logger.info("Created batches", count=len(batches), pages_per_batch=pages_per_batch)
    return batches
