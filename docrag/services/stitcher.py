"""
Stitcher
Reassembles converted batches into one markdown document.
"""
from typing import List

from docrag.models.schemas import Batch

BATCH_SEPARATOR = "\n\n---\n\n"


def stitch_batches(batches: List[Batch], separator: str = BATCH_SEPARATOR) -> str:
    """Join each batch's markdown (or raw text) in batch_number order."""
    ordered = sorted(batches, key=lambda b: b.batch_number)
    return separator.join(batch.markdown or batch.text for batch in ordered)
