"""
Generation Service
Single-shot text generation through the OpenAI chat completions API.
"""
from typing import Optional
import structlog
from openai import AsyncOpenAI, RateLimitError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from docrag.config import Settings, get_settings
from docrag.errors import ConfigurationError, GenerationError, QuotaExceededError
from docrag.models.schemas import Attachment

logger = structlog.get_logger()


def is_quota_error(error: Exception) -> bool:
    """True for rate-limit (HTTP 429) or quota-exhausted responses."""
    if isinstance(error, RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    return "quota" in str(error).lower()


def _log_quota_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Quota exceeded, retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None
    )


class GenerationService:
    """Wraps the chat model used for conversion, rewriting and answering."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set", provider="openai")
            client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.openai_timeout_seconds,
            )
        self.client = client

    async def generate(self, prompt: str, attachment: Optional[Attachment] = None) -> str:
        """
        Generate text for a prompt, optionally with a binary attachment.

        Raises:
            QuotaExceededError: On 429 / quota responses
            GenerationError: On any other failure or an empty response
        """
        if attachment is None:
            content = prompt
        else:
            content = [self._attachment_part(attachment), {"type": "text", "text": prompt}]

        try:
            response = await self.client.chat.completions.create(
                model=self.settings.generation_model,
                messages=[{"role": "user", "content": content}],
                temperature=self.settings.generation_temperature,
            )
        except Exception as e:
            if is_quota_error(e):
                raise QuotaExceededError(str(e), provider="openai") from e
            raise GenerationError(f"Generation failed: {e}", provider="openai") from e

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise GenerationError("Generation returned an empty response", provider="openai")
        return text

    async def generate_with_retry(self, prompt: str, attachment: Optional[Attachment] = None) -> str:
        """generate() with exponential backoff on quota errors only."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(QuotaExceededError),
            stop=stop_after_attempt(self.settings.quota_retry_attempts),
            wait=wait_exponential(multiplier=self.settings.quota_backoff_seconds, max=60),
            before_sleep=_log_quota_retry,
            reraise=True,
        )
        return await retrying(self.generate, prompt, attachment)

    def _attachment_part(self, attachment: Attachment) -> dict:
        data_url = f"data:{attachment.mime_type};base64,{attachment.data_b64}"
        if attachment.is_image:
            return {"type": "image_url", "image_url": {"url": data_url, "detail": "high"}}
        return {
            "type": "file",
            "file": {"filename": attachment.filename or "document", "file_data": data_url},
        }


# Singleton
_generation_service: Optional[GenerationService] = None


def get_generation_service() -> GenerationService:
    """Get singleton generation service instance."""
    global _generation_service
    if _generation_service is None:
        _generation_service = GenerationService()
    return _generation_service
