"""
Legal Question Answering
========================

Answers free-form legal questions with the configured LLM, using a fixed
Indian-law assistant prompt. The reply is returned as plain text. Retries
follow the same bounded policy as extraction.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import get_settings
from .errors import AssistantUnavailable, ValidationError
from .extraction import AttemptFailed, bounded_retry
from .llm_client import LLMClient, get_llm_client, safe_log_content
from .schemas import LegalAnswer

logger = logging.getLogger(__name__)


LEGAL_ASSISTANT_PROMPT = """Act as a helpful AI legal assistant specializing in Indian law.

Provide clear, direct, and informative answers to legal questions.
Do NOT start your response with "YES" or "NO" unless specifically asked for a yes/no answer.

Structure your response in a user-friendly way:
1. Give a direct answer to the question
2. Provide a brief explanation of the relevant legal principles
3. Suggest practical next steps or actions the user can take

Keep your response concise, practical, and focused on helping the user understand their legal situation.
Use simple language and avoid excessive legal jargon."""


def build_legal_prompt(question: str) -> str:
    return f"{LEGAL_ASSISTANT_PROMPT}\n\nQuestion: {question}"


class LegalAssistant:
    """
    Usage:
        assistant = LegalAssistant()
        reply = await assistant.ask("Can the police refuse to register my FIR?")
        reply.answer
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.client = client or get_llm_client()
        self.max_attempts = max_attempts if max_attempts is not None else settings.extraction_max_attempts
        self.retry_delay = retry_delay if retry_delay is not None else settings.extraction_retry_delay
        self.max_tokens = settings.assistant_max_tokens
        self._sleep = sleep

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def _attempt(self, prompt: str) -> str:
        response = await self.client.generate(prompt, max_tokens=self.max_tokens, temperature=0.4)
        if response is None:
            raise AttemptFailed("no response from LLM")
        answer = (response.content or "").strip()
        if not answer:
            raise AttemptFailed("empty answer")
        return answer

    async def ask(self, question: str) -> LegalAnswer:
        """
        Raises:
            ValidationError: question is missing or blank
            AssistantUnavailable: every attempt failed
        """
        if not isinstance(question, str) or not question.strip():
            raise ValidationError(
                "A legal question is required",
                [{"field": "question", "message": "must be a non-empty string", "type": "missing"}],
            )

        answer, attempts, last_error = await bounded_retry(
            lambda: self._attempt(build_legal_prompt(question)),
            self.max_attempts,
            self.retry_delay,
            self._sleep,
            "Legal assistant",
        )

        if answer is None:
            logger.error(
                f"Legal assistant failed after {attempts} attempts ({last_error}); "
                f"question {safe_log_content(question, max_chars=40)}"
            )
            raise AssistantUnavailable(
                "Failed to answer the legal question after multiple attempts",
                question=question,
                attempts=attempts,
            )

        logger.info(f"Answered legal question on attempt {attempts}")
        return LegalAnswer(answer=answer, question=question)
