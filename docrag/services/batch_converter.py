"""
Batch Converter Service
Converts page batches to structured markdown with bounded concurrency and a
shared request-rate budget. A failed batch falls back to its raw text.
"""
import asyncio
import re
from typing import Callable, List, Optional
import structlog

from docrag.config import Settings, get_settings
from docrag.errors import BatchConversionError, DocRAGError
from docrag.models.schemas import Batch, PAGE_BREAK_TEMPLATE
from docrag.services.generation_service import GenerationService, get_generation_service
from docrag.services.rate_limiter import RateLimiter

logger = structlog.get_logger()

# Called after each batch resolves: (batch, completed_count, total_count)
BatchProgressCallback = Callable[[Batch, int, int], None]

_CODE_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)


def build_conversion_prompt(batch: Batch) -> str:
    """Prompt asking the model to rewrite one batch as clean markdown."""
    first_marker = PAGE_BREAK_TEMPLATE.format(page=batch.start_page)
    return f"""You are an expert document parser. Convert the following text from a PDF document into clean, structured Markdown optimized for text-only reading.

Rules:
1. Identify and mark ALL headings using Markdown heading syntax (# for H1, ## for H2, ### for H3, etc.): titles, chapter names and numbers, section and subsection titles.
2. Each heading MUST start with # symbols followed by a space, then the heading text. Example: "# Chapter 1" or "## Introduction"
3. IMAGES: Do NOT include image markdown syntax ![...]. Replace any image with a short text description like: [Image: brief description of what the image shows]
4. TABLES: Do NOT use markdown table syntax (| and -). Describe the table content in plain sentences or bullet points.
5. Preserve lists (bulleted using - or * and numbered using 1. 2. 3.).
6. Maintain the logical flow and structure of the document.
7. This text is from pages {batch.start_page} to {batch.end_page}. At the start, insert {first_marker}. For each subsequent page in this batch, insert [PAGE_BREAK_n] where n is the page number.
8. Do not add any commentary, intro/outro text, or code block markers. Output only the raw Markdown content.
9. Write mathematical formulas in LaTeX notation or clear text.
10. Remove artifacts from PDF extraction such as repeated page numbers, headers and footers.
11. Put one blank line before and after each heading.

Text to convert:
{batch.text}"""


def clean_markdown(markdown: str) -> str:
    """Strip a wrapping code fence the model sometimes adds anyway."""
    match = _CODE_FENCE_RE.match(markdown)
    if match:
        markdown = match.group(1)
    return markdown.strip()


def with_leading_marker(content: str, page: int) -> str:
    """Make sure the batch starts with the page marker for its first page."""
    marker = PAGE_BREAK_TEMPLATE.format(page=page)
    if content.lstrip().startswith(marker):
        return content
    return f"{marker}\n\n{content}"


class BatchConverter:
    """Converts batches concurrently under a concurrency and rate budget."""

    def __init__(
        self,
        generation_service: Optional[GenerationService] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings or get_settings()
        self.generation_service = generation_service or get_generation_service()
        # None -> a fresh limiter per convert_batches() call (one per ingestion run)
        self.rate_limiter = rate_limiter

    async def convert_batch(self, batch: Batch) -> str:
        """
        Convert one batch to markdown.

        Raises:
            BatchConversionError: On any failure (QuotaExceededError after retries)
        """
        try:
            markdown = await self.generation_service.generate_with_retry(build_conversion_prompt(batch))
        except BatchConversionError:
            raise
        except DocRAGError as e:
            raise BatchConversionError(e.message, provider=e.provider) from e

        markdown = clean_markdown(markdown)
        if not markdown:
            raise BatchConversionError("Conversion returned no content")
        return with_leading_marker(markdown, batch.start_page)

    async def convert_batches(
        self,
        batches: List[Batch],
        on_progress: Optional[BatchProgressCallback] = None,
    ) -> List[int]:
        """
        Convert every batch, never aborting on a single failure.

        Each batch takes a concurrency slot, then a rate-limiter slot, then
        issues its conversion under a deadline. Failed batches get their raw
        text as markdown.

        Args:
            batches: Batches from the splitter (mutated in place)
            on_progress: Optional callback invoked as each batch resolves

        Returns:
            Sorted batch numbers whose conversion failed
        """
        limiter = self.rate_limiter or RateLimiter(
            self.settings.max_requests_per_minute,
            self.settings.rate_limit_window_seconds,
        )
        semaphore = asyncio.Semaphore(self.settings.concurrency_limit)
        failed: List[int] = []
        completed = 0
        total = len(batches)

        logger.info(
            "Converting batches",
            total=total,
            concurrency=self.settings.concurrency_limit,
            max_requests_per_minute=limiter.max_requests
        )

        async def _run(batch: Batch) -> None:
            nonlocal completed
            async with semaphore:
                await limiter.acquire()
                logger.info(
                    "Processing batch",
                    batch_number=batch.batch_number,
                    total=total,
                    pages=f"{batch.start_page}-{batch.end_page}"
                )
                try:
                    batch.markdown = await asyncio.wait_for(
                        self.convert_batch(batch),
                        timeout=self.settings.batch_timeout_seconds,
                    )
                    batch.error = None
                    logger.info("Batch converted", batch_number=batch.batch_number)
                except asyncio.TimeoutError:
                    self._fall_back(batch, f"Conversion timed out after {self.settings.batch_timeout_seconds}s")
                    failed.append(batch.batch_number)
                except Exception as e:
                    self._fall_back(batch, str(e) or type(e).__name__)
                    failed.append(batch.batch_number)

            completed += 1
            if on_progress:
                on_progress(batch, completed, total)

        await asyncio.gather(*(_run(batch) for batch in batches))

        if failed:
            logger.warning(
                "Some batches failed to convert, using original text as fallback",
                failed_batches=sorted(failed)
            )
        return sorted(failed)

    def _fall_back(self, batch: Batch, error: str) -> None:
        logger.error("Batch conversion failed", batch_number=batch.batch_number, error=error)
        batch.error = error
        batch.markdown = with_leading_marker(batch.text, batch.start_page)


# Singleton
_batch_converter: Optional[BatchConverter] = None


def get_batch_converter() -> BatchConverter:
    """Get singleton batch converter instance."""
    global _batch_converter
    if _batch_converter is None:
        _batch_converter = BatchConverter()
    return _batch_converter
