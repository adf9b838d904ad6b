"""
Document Tools
Whole-document generation: summaries, key concepts, study questions,
simplification and multimodal structured extraction.
"""
import base64
from typing import Literal, Optional
import structlog

from docrag.config import Settings, get_settings
from docrag.errors import ConfigurationError, DocRAGError, GenerationError
from docrag.models.schemas import Attachment, ContextSource
from docrag.services.document_cache import DocumentCache, get_document_cache, resolve_context
from docrag.services.generation_service import GenerationService, get_generation_service

logger = structlog.get_logger()

SummaryType = Literal["brief", "detailed", "key-points"]
ReadingLevel = Literal["elementary", "middle-school", "high-school"]

SUMMARY_INSTRUCTIONS = {
    "brief": "Provide a brief 2-3 sentence summary of the document.",
    "detailed": "Provide a detailed summary of the document, covering all main points and important details.",
    "key-points": "Extract and list the key points from the document in bullet points.",
}

READING_LEVELS = {
    "elementary": "elementary school (grades 1-5)",
    "middle-school": "middle school (grades 6-8)",
    "high-school": "high school (grades 9-12)",
}

STRUCTURED_EXTRACTION_PROMPT = """You are an expert document parser. Extract all text from the provided document and format it in clean, structured Markdown.

Rules:
1. Preserve all headings (H1, H2, etc.) using Markdown heading syntax.
2. Describe tables in plain sentences or bullet points.
3. Preserve lists (bulleted or numbered).
4. Maintain the logical flow and structure of the document.
5. Whenever a new page starts, insert a marker like [PAGE_BREAK_n] where n is the page number (e.g. [PAGE_BREAK_1], [PAGE_BREAK_2]).
6. Do not add any commentary or intro/outro text. Just the extracted content.
7. If there are images with text, extract that text as well.
8. Write mathematical formulas in LaTeX if possible, or as clear text.

Return ONLY the Markdown content."""


class DocumentTools:
    def __init__(
        self,
        generation_service: Optional[GenerationService] = None,
        document_cache: Optional[DocumentCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.generation_service = generation_service or get_generation_service()
        self.document_cache = document_cache or get_document_cache(self.settings)

    def _document_prompt(self, source: ContextSource, instruction: str) -> str:
        document = resolve_context(source, self.document_cache)
        return f"Document content:\n\n{document}\n\n{instruction}"

    async def _generate(self, prompt: str, attachment: Optional[Attachment] = None) -> str:
        try:
            return await self.generation_service.generate_with_retry(prompt, attachment)
        except (ConfigurationError, GenerationError):
            raise
        except DocRAGError as e:
            raise GenerationError(f"Document tool generation failed: {e.message}", provider=e.provider) from e

    async def summarize(self, source: ContextSource, summary_type: SummaryType = "brief") -> str:
        logger.info("Summarizing document", summary_type=summary_type, source=type(source).__name__)
        prompt = self._document_prompt(source, SUMMARY_INSTRUCTIONS[summary_type])
        return await self._generate(prompt)

    async def extract_key_concepts(self, source: ContextSource) -> str:
        prompt = self._document_prompt(
            source,
            "Analyze the document and extract the main concepts, topics, and themes. Format as a list."
        )
        return await self._generate(prompt)

    async def generate_study_questions(self, source: ContextSource, count: int = 5) -> str:
        if not 1 <= count <= 20:
            raise ValueError("count must be between 1 and 20")
        prompt = self._document_prompt(
            source,
            f"Generate {count} study questions based on the document to help a student "
            "test their knowledge. Include answers."
        )
        return await self._generate(prompt)

    async def simplify_text(self, text: str, reading_level: ReadingLevel = "high-school") -> str:
        prompt = (
            f"Rewrite the following text to be understandable at a {READING_LEVELS[reading_level]} "
            "reading level. Keep the main ideas but use simpler words and shorter sentences:"
            f"\n\n{text}"
        )
        return await self._generate(prompt)

    async def extract_structured_text(
        self,
        data: bytes,
        mime_type: str,
        filename: Optional[str] = None,
    ) -> str:
        """Send the raw file to the model and get page-marked markdown back."""
        attachment = Attachment(
            data_b64=base64.b64encode(data).decode("utf-8"),
            mime_type=mime_type,
            filename=filename,
        )
        logger.info("Extracting structured text", mime_type=mime_type, size_bytes=len(data))
        return await self._generate(STRUCTURED_EXTRACTION_PROMPT, attachment)


# Singleton
_document_tools: Optional[DocumentTools] = None


def get_document_tools() -> DocumentTools:
    """Get singleton document tools instance."""
    global _document_tools
    if _document_tools is None:
        _document_tools = DocumentTools()
    return _document_tools
