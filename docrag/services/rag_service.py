"""
RAG Service
Query path: contextualize -> retrieve -> grounded answer.
"""
from typing import List, Optional
import structlog

from docrag.models.schemas import ConversationTurn, QueryResult, RetrievedChunk
from docrag.services.answer_generator import AnswerGenerator, get_answer_generator
from docrag.services.contextualizer import QueryContextualizer, get_contextualizer
from docrag.services.retriever import Retriever, get_retriever

logger = structlog.get_logger()

NO_RELEVANT_INFO_ANSWER = (
    "I couldn't find any relevant information in the document to answer your question. "
    "Please try rephrasing your question or ask about a different topic."
)


class RAGService:
    """Answers questions about one ingested document."""

    def __init__(
        self,
        contextualizer: Optional[QueryContextualizer] = None,
        retriever: Optional[Retriever] = None,
        answer_generator: Optional[AnswerGenerator] = None,
    ):
        self.contextualizer = contextualizer or get_contextualizer()
        self.retriever = retriever or get_retriever()
        self.answer_generator = answer_generator or get_answer_generator()

    async def answer(
        self,
        file_id: str,
        question: str,
        history: Optional[List[ConversationTurn]] = None,
        top_k: Optional[int] = None,
    ) -> QueryResult:
        """
        Answer ``question`` from the chunks indexed under ``file_id``.

        The contextualized query is used for retrieval only; the answer is
        generated for the original question. When retrieval finds nothing a
        fixed answer is returned without calling the generator.
        """
        history = history or []

        logger.info("Stage: Contextualizing question", file_id=file_id, history_turns=len(history))
        contextualized = await self.contextualizer.contextualize(question, history)

        logger.info("Stage: Retrieving relevant chunks", query=contextualized.query)
        results = await self.retriever.retrieve(file_id, contextualized.query, top_k)

        if not results:
            logger.info("No relevant chunks found", file_id=file_id)
            return QueryResult(
                answer=NO_RELEVANT_INFO_ANSWER,
                retrieved_chunks=[],
                contextualized_query=contextualized.query,
            )

        logger.info("Stage: Generating answer", chunks=len(results))
        answer = await self.answer_generator.generate_answer(question, results, history)

        return QueryResult(
            answer=answer,
            retrieved_chunks=[
                RetrievedChunk(
                    text=r.metadata.text,
                    page_number=r.metadata.page_number,
                    score=r.score,
                )
                for r in results
            ],
            contextualized_query=contextualized.query,
        )


# Singleton
_rag_service: Optional[RAGService] = None


def get_rag_service() -> RAGService:
    """Get singleton RAG service instance."""
    global _rag_service
    if _rag_service is None:
        _rag_service = RAGService()
    return _rag_service
