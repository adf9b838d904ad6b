"""
Answer Generator
Produces an answer grounded in retrieved chunks and the conversation so far.
"""
from typing import List, Optional
import structlog

from docrag.errors import ConfigurationError, DocRAGError, GenerationError
from docrag.models.schemas import ConversationTurn, RetrievalResult
from docrag.services.contextualizer import format_history
from docrag.services.generation_service import GenerationService, get_generation_service
from docrag.services.page_attributor import strip_page_markers

logger = structlog.get_logger()

ANSWER_INSTRUCTION = """You are a helpful AI assistant helping users understand documents. Answer questions accurately based on the provided context from the document.

Rules:
1. Base your answer primarily on the retrieved context
2. If the context doesn't contain enough information, say so clearly
3. Cite page numbers when relevant
4. Be concise but thorough
5. Maintain conversation continuity using the chat history
6. If asked about something not in the context, acknowledge the limitation"""


def format_context(results: List[RetrievalResult]) -> str:
    blocks = []
    for idx, result in enumerate(results, start=1):
        page = result.metadata.page_number
        page_info = f" (Page {page})" if page else ""
        blocks.append(f"[Context {idx}{page_info}]:\n{strip_page_markers(result.metadata.text)}")
    return "\n\n---\n\n".join(blocks)


def build_answer_prompt(
    question: str,
    results: List[RetrievalResult],
    history: Optional[List[ConversationTurn]] = None,
) -> str:
    """Instruction, history (if any), page-labelled context, then the question."""
    parts = [ANSWER_INSTRUCTION]
    if history:
        parts.append(f"Previous Conversation:\n{format_history(history)}")
    parts.append(f"Retrieved Context from Document:\n{format_context(results)}")
    parts.append(f"User Question: {question}")
    parts.append("Answer:")
    return "\n\n".join(parts)


class AnswerGenerator:
    def __init__(self, generation_service: Optional[GenerationService] = None):
        self._generation_service = generation_service

    @property
    def generation_service(self) -> GenerationService:
        if self._generation_service is None:
            self._generation_service = get_generation_service()
        return self._generation_service

    async def generate_answer(
        self,
        question: str,
        results: List[RetrievalResult],
        history: Optional[List[ConversationTurn]] = None,
    ) -> str:
        """
        Generate the final answer.

        Raises:
            GenerationError: If generation fails after the quota retry
        """
        prompt = build_answer_prompt(question, results, history)
        try:
            answer = await self.generation_service.generate_with_retry(prompt)
        except (ConfigurationError, GenerationError):
            raise
        except DocRAGError as e:
            raise GenerationError(f"Failed to generate response: {e.message}", provider=e.provider) from e

        logger.info("Answer generated", chunks=len(results), answer_length=len(answer))
        return answer.strip()


# Singleton
_answer_generator: Optional[AnswerGenerator] = None


def get_answer_generator() -> AnswerGenerator:
    """Get singleton answer generator instance."""
    global _answer_generator
    if _answer_generator is None:
        _answer_generator = AnswerGenerator()
    return _answer_generator
