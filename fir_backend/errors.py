"""
Error taxonomy shared by the store, the extraction pipeline and the API.

Each error carries a stable ``code`` and the HTTP status the API maps it to,
so callers outside FastAPI can branch on the same values.
"""

from typing import Any, Dict, List, Optional


class FirServiceError(Exception):
    """Base class for all service errors."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code}


class ValidationError(FirServiceError):
    """Malformed or missing input. Never retried."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data

    @classmethod
    def from_pydantic(cls, message: str, exc) -> "ValidationError":
        """Build from a pydantic ValidationError, keeping field-level detail."""
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        return cls(message, errors)


class NotFoundError(FirServiceError):
    """Referenced FIR, user, evidence or notification does not exist."""

    code = "not_found"
    status_code = 404


class ConflictError(FirServiceError):
    """Case identifier already taken. Callers may regenerate and retry once."""

    code = "conflict"
    status_code = 409


class ExtractionFailed(FirServiceError):
    """The text-understanding service gave no valid result within the retry budget."""

    code = "extraction_failed"
    status_code = 503

    def __init__(self, message: str, user_input: str = "", attempts: int = 0,
                 last_error: Optional[str] = None):
        super().__init__(message)
        self.user_input = user_input
        self.attempts = attempts
        self.last_error = last_error

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["userInput"] = self.user_input
        data["attempts"] = self.attempts
        return data


class StoreFailure(FirServiceError):
    """Persistence layer unreachable or returned an unexpected error."""

    code = "store_failure"
    status_code = 500

    def to_dict(self) -> Dict[str, Any]:
        # Driver messages stay in the logs
        return {"message": "Storage operation failed", "code": self.code}


class AssistantUnavailable(FirServiceError):
    """The legal assistant gave no answer within the retry budget."""

    code = "assistant_unavailable"
    status_code = 503

    def __init__(self, message: str, question: str = "", attempts: int = 0):
        super().__init__(message)
        self.question = question
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["question"] = self.question
        data["attempts"] = self.attempts
        return data
