"""
Query Contextualizer
Rewrites a follow-up question into a standalone search query.
"""
from typing import List, Optional
import structlog

from docrag.errors import ConfigurationError, ContextualizationError, DocRAGError
from docrag.models.schemas import ContextualizedQuery, ConversationTurn
from docrag.services.generation_service import GenerationService, get_generation_service

logger = structlog.get_logger()


def format_history(history: List[ConversationTurn]) -> str:
    return "\n".join(
        f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.text}" for turn in history
    )


def build_contextualize_prompt(question: str, history: List[ConversationTurn]) -> str:
    return f"""Given the following conversation history and a new user question, rewrite the question to be a standalone search query that can be understood without the conversation context.

Rules:
1. Resolve all pronouns (it, that, this, they, etc.) to their actual referents from the conversation
2. Include necessary context from previous messages
3. Keep the query concise but complete
4. If the question is already standalone, return it as-is
5. Do not add extra information or change the intent
6. Return ONLY the rewritten question, nothing else

Conversation History:
{format_history(history)}

Current Question: {question}

Standalone Question:"""


class QueryContextualizer:
    """Resolves references in a question using prior conversation turns."""

    def __init__(self, generation_service: Optional[GenerationService] = None):
        self._generation_service = generation_service

    @property
    def generation_service(self) -> GenerationService:
        # Resolved lazily so an empty history never needs a configured client
        if self._generation_service is None:
            self._generation_service = get_generation_service()
        return self._generation_service

    async def contextualize(
        self,
        question: str,
        history: List[ConversationTurn],
    ) -> ContextualizedQuery:
        """
        Rewrite ``question`` as a standalone query.

        With no history the question is returned unchanged without any
        generation call. On failure the original question is returned with
        ``fell_back=True``.
        """
        if not history:
            return ContextualizedQuery(query=question)

        try:
            rewritten = await self._rewrite(question, history)
        except ContextualizationError as e:
            logger.warning("Contextualization failed, using original question", error=str(e))
            return ContextualizedQuery(query=question, fell_back=True, error=str(e))

        logger.info("Question contextualized", original=question, contextualized=rewritten)
        return ContextualizedQuery(query=rewritten)

    async def _rewrite(self, question: str, history: List[ConversationTurn]) -> str:
        try:
            response = await self.generation_service.generate_with_retry(
                build_contextualize_prompt(question, history)
            )
        except ConfigurationError:
            raise
        except DocRAGError as e:
            raise ContextualizationError(e.message, provider=e.provider) from e

        rewritten = response.strip()
        if not rewritten:
            raise ContextualizationError("Contextualization returned an empty query")
        return rewritten


# Singleton
_contextualizer: Optional[QueryContextualizer] = None


def get_contextualizer() -> QueryContextualizer:
    """Get singleton contextualizer instance."""
    global _contextualizer
    if _contextualizer is None:
        _contextualizer = QueryContextualizer()
    return _contextualizer
