"""
Configuration for the FIR Service
=================================

Environment variables:
- LLM_MODE: none|gemini|openrouter (default: none)
- GEMINI_API_KEY: API key for Gemini
- GEMINI_MODEL: Model to use (default: gemini-1.5-flash)
- OPENROUTER_API_KEY: API key for OpenRouter
- OPENROUTER_MODEL: Model to use (default: google/gemini-flash-1.5)
- EXTRACTION_MAX_ATTEMPTS: Attempts per LLM request, extraction and legal questions (default: 3)
- EXTRACTION_RETRY_DELAY: Seconds between attempts (default: 1.0)
- ASSISTANT_MAX_TOKENS: Answer length cap for legal questions (default: 2048)

The database URL is read separately by ``db.session`` (DATABASE_URL) so tests
can swap it at runtime.
"""

from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class LLMMode(str, Enum):
    """Which text-understanding provider backs the extraction pipeline"""
    NONE = "none"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM Configuration
    llm_mode: LLMMode = LLMMode.NONE

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # OpenRouter
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "google/gemini-flash-1.5"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Extraction pipeline
    extraction_max_attempts: int = 3
    extraction_retry_delay: float = 1.0
    extraction_max_tokens: int = 1024
    assistant_max_tokens: int = 2048

    # Listing / search
    default_page_size: int = 10
    max_page_size: int = 100

    # Timeouts (seconds)
    llm_timeout: int = 30

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if self.llm_mode == LLMMode.GEMINI:
            if not self.gemini_api_key:
                warnings.append("LLM_MODE=gemini but GEMINI_API_KEY not set")

        elif self.llm_mode == LLMMode.OPENROUTER:
            if not self.openrouter_api_key:
                warnings.append("LLM_MODE=openrouter but OPENROUTER_API_KEY not set")

        elif self.llm_mode == LLMMode.NONE:
            warnings.append("LLM_MODE=none: extraction requests will fail")

        if self.extraction_max_attempts < 1:
            warnings.append("EXTRACTION_MAX_ATTEMPTS must be at least 1")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_llm_mode() -> LLMMode:
    """Get current LLM mode"""
    return get_settings().llm_mode
