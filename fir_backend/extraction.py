"""
Incident Extraction Pipeline
============================

Turns a free-text incident description into structured FIR fields using the
configured LLM. Each attempt:

1. sends the extraction prompt
2. takes the first balanced JSON object out of the reply
3. validates it against ``ExtractedFir``

A failed attempt is retried after a fixed delay. When every attempt fails,
``ExtractionFailed`` carries the user input back so the caller can fall
back to manual entry. Nothing is persisted here; the returned ``firId`` is
provisional.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from pydantic import ValidationError as PydanticValidationError

from .config import get_settings
from .errors import ExtractionFailed, ValidationError
from .identifiers import generate_fir_id
from .llm_client import LLMClient, find_first_json_object, get_llm_client, safe_log_content
from .schemas import ExtractedFir, ExtractionResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


EXTRACTION_PROMPT_TEMPLATE = """Act as an FIR assistant. Extract these details from user input:
1. Crime type (e.g., theft, assault)
2. Date/time (ISO format)
3. Location (GPS preferred)
4. Victim/perpetrator details
5. Evidence mentions

Respond ONLY in JSON format:
{{
  "crime": string,
  "ipcSections": string[] (e.g., ["IPC 379"]),
  "summary": string,
  "priority": 1-5,
  "dateTime": string (ISO format date and time of the incident, or leave blank if uncertain),
  "location": string (address or GPS coordinates of the incident)
}}

User input: {user_input}"""


def build_prompt(user_input: str) -> str:
    return EXTRACTION_PROMPT_TEMPLATE.format(user_input=user_input)


class AttemptFailed(Exception):
    """One LLM attempt produced nothing usable"""


async def bounded_retry(
    attempt: Callable[[], Awaitable[T]],
    max_attempts: int,
    delay: float,
    sleep: Callable[[float], Awaitable[None]],
    label: str,
) -> Tuple[Optional[T], int, Optional[str]]:
    """
    Await ``attempt()`` up to ``max_attempts`` times, sleeping ``delay``
    seconds between failed attempts (never after the last one).

    Returns:
        ``(result, attempts_used, None)`` on success, or
        ``(None, max_attempts, last_error)`` when every attempt failed.
    """
    last_error = None
    for n in range(1, max_attempts + 1):
        try:
            return await attempt(), n, None
        except AttemptFailed as e:
            last_error = str(e)
            logger.warning(f"{label} attempt {n}/{max_attempts} failed: {last_error}")
            if n < max_attempts:
                await sleep(delay)
    return None, max_attempts, last_error


def parse_extraction(content: Optional[str]) -> ExtractedFir:
    """
    Pull the structured fields out of raw model output.

    Raises:
        AttemptFailed: no JSON object, invalid JSON, or schema mismatch
    """
    block = find_first_json_object(content or "")
    if block is None:
        raise AttemptFailed("no JSON object in response")

    try:
        data = json.loads(block)
    except json.JSONDecodeError as e:
        raise AttemptFailed(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise AttemptFailed("JSON payload is not an object")

    try:
        return ExtractedFir.model_validate(data)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise AttemptFailed(f"schema mismatch ({fields})") from e


class FirExtractor:
    """
    Bounded-retry extraction.

    Usage:
        extractor = FirExtractor()
        result = await extractor.extract("My phone was stolen at the bus stand yesterday")
        result.fir_id  # provisional, e.g. FIR-20240315-482
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
        self.max_tokens = settings.extraction_max_tokens
        self._sleep = sleep

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def _attempt(self, prompt: str) -> ExtractedFir:
        response = await self.client.generate(
            prompt,
            json_mode=True,
            max_tokens=self.max_tokens,
        )
        if response is None:
            raise AttemptFailed("no response from LLM")

        logger.debug(f"Extraction response: {safe_log_content(response.content)}")
        return parse_extraction(response.content)

    async def extract(self, user_input: str) -> ExtractionResult:
        """
        Extract FIR fields from ``user_input``.

        Raises:
            ValidationError: input is empty
            ExtractionFailed: every attempt failed
        """
        if not isinstance(user_input, str) or not user_input.strip():
            raise ValidationError(
                "User input is required",
                [{"field": "userInput", "message": "must be a non-empty string", "type": "missing"}],
            )

        prompt = build_prompt(user_input)
        extracted, attempts, last_error = await bounded_retry(
            lambda: self._attempt(prompt), self.max_attempts, self.retry_delay, self._sleep, "Extraction"
        )

        if extracted is not None:
            fir_id = generate_fir_id()
            logger.info(f"Extracted FIR details on attempt {attempts} (provisional id {fir_id})")
            return ExtractionResult(fir_id=fir_id, **extracted.model_dump())

        logger.error(
            f"Extraction failed after {self.max_attempts} attempts; "
            f"input {safe_log_content(user_input, max_chars=40)}"
        )
        raise ExtractionFailed(
            "Failed to extract FIR details after multiple attempts",
            user_input=user_input,
            attempts=self.max_attempts,
            last_error=last_error,
        )

