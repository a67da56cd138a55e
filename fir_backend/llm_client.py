"""
LLM Client for Incident Extraction
==================================

Supports:
- Google Gemini
- OpenRouter (any chat-completions model)

Used by the extraction pipeline to turn a free-text incident description into
structured FIR fields. With LLM_MODE=none every call returns None.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from .config import LLMMode, get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# JSON block scanning
# =============================================================================

def find_first_json_object(content: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` block in ``content``.

    Braces inside JSON string literals are ignored, so a summary containing
    "}" does not cut the block short. Returns None when no block closes.
    """
    if not content:
        return None

    start = content.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(content)):
            char = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return content[start:i + 1]
        # Unclosed from here; an unbalanced quote may have swallowed the rest
        start = content.find("{", start + 1)

    return None


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """
    Create a safe log representation of content.

    Args:
        content: Content to log
        max_chars: Maximum characters to show

    Returns:
        Safe log string with length and hash
    """
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


@dataclass
class LLMResponse:
    """Response from LLM"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    raw_response: Optional[Dict] = None


class LLMClient:
    """
    Unified LLM client for Gemini and OpenRouter.

    Usage:
        client = LLMClient()
        response = await client.generate("Extract the incident details...")
    """

    def __init__(self, settings=None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.llm_timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def available(self) -> bool:
        mode = self.settings.llm_mode
        if mode == LLMMode.GEMINI:
            return bool(self.settings.gemini_api_key)
        if mode == LLMMode.OPENROUTER:
            return bool(self.settings.openrouter_api_key)
        return False

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: int = 1024,
        temperature: float = 0.2
    ) -> Optional[LLMResponse]:
        """
        Generate response from LLM.

        Args:
            prompt: User prompt
            system_prompt: System prompt (optional)
            json_mode: Request JSON response
            max_tokens: Maximum tokens
            temperature: Sampling temperature

        Returns:
            LLMResponse or None if failed
        """
        mode = self.settings.llm_mode

        if mode == LLMMode.NONE:
            logger.debug("LLM mode is NONE, skipping")
            return None

        try:
            if mode == LLMMode.GEMINI:
                return await self._generate_gemini(
                    prompt, system_prompt, json_mode, max_tokens, temperature
                )
            elif mode == LLMMode.OPENROUTER:
                return await self._generate_openrouter(
                    prompt, system_prompt, json_mode, max_tokens, temperature
                )
        except httpx.HTTPError as e:
            logger.error(f"LLM generation failed: {e}")
            return None

        return None

    async def _generate_gemini(
        self,
        prompt: str,
        system_prompt: Optional[str],
        json_mode: bool,
        max_tokens: int,
        temperature: float
    ) -> Optional[LLMResponse]:
        """Generate via Google Gemini API"""
        if not self.settings.gemini_api_key:
            logger.warning("Gemini API key not set")
            return None

        client = await self._get_client()

        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        payload = {
            "contents": [
                {
                    "parts": [{"text": full_prompt}]
                }
            ],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            }
        }

        if json_mode:
            payload["generationConfig"]["responseMimeType"] = "application/json"

        url = f"{self.settings.gemini_base_url}/models/{self.settings.gemini_model}:generateContent"

        try:
            response = await client.post(
                url,
                json=payload,
                params={"key": self.settings.gemini_api_key}
            )
            response.raise_for_status()
            data = response.json()

            # Blocked/filtered responses come back without candidates
            try:
                content = data["candidates"][0]["content"]["parts"][0]["text"]
            except (KeyError, IndexError, TypeError) as e:
                logger.error(f"Gemini response missing content: {e}")
                return None

            if content is None:
                logger.warning("Gemini returned null content")
                content = ""

            usage_metadata = data.get("usageMetadata", {})

            return LLMResponse(
                content=content,
                model=self.settings.gemini_model,
                usage={
                    "input_tokens": usage_metadata.get("promptTokenCount", 0),
                    "output_tokens": usage_metadata.get("candidatesTokenCount", 0)
                },
                raw_response=data
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"Gemini API error: {e.response.status_code} - {e.response.text[:200]}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Gemini request failed: {e}")
            return None

    async def _generate_openrouter(
        self,
        prompt: str,
        system_prompt: Optional[str],
        json_mode: bool,
        max_tokens: int,
        temperature: float
    ) -> Optional[LLMResponse]:
        """Generate via OpenRouter API (OpenAI-compatible)"""
        if not self.settings.openrouter_api_key:
            logger.warning("OpenRouter API key not set")
            return None

        client = await self._get_client()

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.settings.openrouter_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {self.settings.openrouter_api_key}",
            "Content-Type": "application/json",
            "X-Title": "FIR Registration Assistant"
        }

        try:
            response = await client.post(
                f"{self.settings.openrouter_base_url}/chat/completions",
                json=payload,
                headers=headers
            )
            response.raise_for_status()
            data = response.json()

            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                logger.error(f"OpenRouter response missing content: {e}")
                return None

            if content is None:
                logger.warning("OpenRouter returned null content")
                content = ""

            usage = data.get("usage", {})

            return LLMResponse(
                content=content,
                model=self.settings.openrouter_model,
                usage={
                    "input_tokens": usage.get("prompt_tokens", 0),
                    "output_tokens": usage.get("completion_tokens", 0)
                },
                raw_response=data
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenRouter API error: {e.response.status_code} - {e.response.text[:200]}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouter request failed: {e}")
            return None


# Singleton
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get singleton LLM client"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client


async def close_llm_client() -> None:
    global _llm_client
    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None
