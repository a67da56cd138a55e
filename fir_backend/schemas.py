"""
Pydantic Schemas for the FIR Service
====================================

Boundary models for the store, the search engine and the HTTP API.

Wire format is camelCase (``firId``, ``ipcSections``, ``createdAt``); Python
code uses snake_case attribute names. Both spellings are accepted on input.
Timestamps serialize as ISO-8601 UTC strings.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import AliasChoices, AfterValidator, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import LLMMode
from .identifiers import is_valid_fir_id
from .security import is_password_too_long


class CamelModel(BaseModel):
    """Base model: camelCase aliases, snake_case population, ORM reads"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _strip_required(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} must be a non-empty string")
    return value.strip()


def _clean_string_list(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    cleaned = [v.strip() for v in values if isinstance(v, str) and v.strip()]
    return cleaned


def _check_password(value: str) -> str:
    if is_password_too_long(value):
        raise ValueError("password exceeds 72 bytes")
    return value


def _as_utc(value: datetime) -> datetime:
    # Columns hold naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def _check_priority(value):
    # No coercion: "3", 3.0 and true are not priorities
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("priority must be an integer between 1 and 5")
    return value


# =============================================================================
# USERS
# =============================================================================

class UserCreate(CamelModel):
    """Request to create a user"""
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8)
    email: Optional[str] = Field(None, max_length=255)
    full_name: Optional[str] = Field(None, max_length=255)
    role: str = Field("civilian", max_length=50)
    phone: Optional[str] = Field(None, max_length=50)

    @field_validator("username")
    @classmethod
    def _username(cls, v):
        return _strip_required(v, "username")

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        return _check_password(v)


class UserUpdate(CamelModel):
    """Partial user update"""

    class Config:
        extra = "forbid"

    email: Optional[str] = Field(None, max_length=255)
    full_name: Optional[str] = Field(None, max_length=255)
    role: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=8)

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        if v is None:
            raise ValueError("password cannot be null")
        return _check_password(v)


class UserOutput(CamelModel):
    """User as returned to callers (no password hash)"""
    id: int
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    phone: Optional[str] = None
    is_active: bool = True
    created_at: UtcDatetime
    updated_at: UtcDatetime
    last_login: Optional[UtcDatetime] = None


# =============================================================================
# FIR RECORDS
# =============================================================================

class FirCreate(CamelModel):
    """Inbound creation payload"""
    fir_id: Optional[str] = Field(None, description="Case id; generated when absent")
    user_id: Optional[int] = Field(None, description="Reporter user id")
    officer_id: Optional[int] = Field(None, description="Assigned officer user id")
    crime: str = Field(..., max_length=500)
    ipc_sections: List[str] = Field(..., min_length=1, description="Applicable statute sections")
    summary: str
    priority: int = Field(..., ge=1, le=5)
    date_time: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    district: Optional[str] = Field(None, max_length=255)
    state: Optional[str] = Field(None, max_length=255)
    suspects: Optional[List[str]] = None
    victims: Optional[List[str]] = None
    witnesses: Optional[List[str]] = None
    status: Optional[str] = Field(None, max_length=50)
    tags: List[str] = Field(default_factory=list)
    is_anonymous: bool = False
    extra_data: Optional[Dict[str, Any]] = Field(None, alias="metadata")

    class Config:
        json_schema_extra = {
            "example": {
                "crime": "theft",
                "ipcSections": ["IPC 379"],
                "summary": "Mobile phone stolen from a parked scooter near the market.",
                "priority": 3,
                "dateTime": "2024-03-15T18:30:00",
                "location": "Sector 17 market, Chandigarh",
            }
        }

    @field_validator("fir_id")
    @classmethod
    def _fir_id_shape(cls, v):
        if v is not None and not is_valid_fir_id(v):
            raise ValueError("firId must match FIR-<8 digits>-<3 digits>")
        return v

    @field_validator("crime", "summary")
    @classmethod
    def _required_text(cls, v, info):
        return _strip_required(v, info.field_name)

    @field_validator("ipc_sections")
    @classmethod
    def _sections(cls, v):
        cleaned = _clean_string_list(v)
        if not cleaned or len(cleaned) != len(v):
            raise ValueError("ipcSections must be a non-empty list of non-empty strings")
        return cleaned

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return _check_priority(v)

    @field_validator("suspects", "victims", "witnesses", "tags")
    @classmethod
    def _lists(cls, v):
        return _clean_string_list(v)

    @field_validator("date_time", "location", "status")
    @classmethod
    def _blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v is not None else v


class FirUpdate(CamelModel):
    """Partial FIR update; fields left unset are untouched"""

    class Config:
        extra = "forbid"

    user_id: Optional[int] = None
    officer_id: Optional[int] = None
    crime: Optional[str] = Field(None, max_length=500)
    ipc_sections: Optional[List[str]] = Field(None, min_length=1)
    summary: Optional[str] = None
    priority: Optional[int] = Field(None, ge=1, le=5)
    date_time: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    district: Optional[str] = Field(None, max_length=255)
    state: Optional[str] = Field(None, max_length=255)
    suspects: Optional[List[str]] = None
    victims: Optional[List[str]] = None
    witnesses: Optional[List[str]] = None
    status: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None
    is_anonymous: Optional[bool] = None
    extra_data: Optional[Dict[str, Any]] = Field(None, alias="metadata")

    @field_validator("crime", "summary")
    @classmethod
    def _required_text(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return _strip_required(v, info.field_name)

    @field_validator("ipc_sections")
    @classmethod
    def _sections(cls, v):
        if v is None:
            raise ValueError("ipcSections cannot be null")
        cleaned = _clean_string_list(v)
        if not cleaned or len(cleaned) != len(v):
            raise ValueError("ipcSections must be a non-empty list of non-empty strings")
        return cleaned

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        if v is None:
            raise ValueError("priority cannot be null")
        return _check_priority(v)

    @field_validator("suspects", "victims", "witnesses", "tags")
    @classmethod
    def _lists(cls, v):
        return _clean_string_list(v)


class FirOutput(CamelModel):
    """Outbound FIR representation"""
    id: int
    fir_id: str
    user_id: Optional[int] = None
    officer_id: Optional[int] = None
    crime: str
    ipc_sections: List[str]
    summary: str
    priority: int
    date_time: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    district: Optional[str] = None
    state: Optional[str] = None
    suspects: Optional[List[str]] = None
    victims: Optional[List[str]] = None
    witnesses: Optional[List[str]] = None
    status: str
    tags: List[str] = Field(default_factory=list)
    is_anonymous: bool = False
    created_at: UtcDatetime
    updated_at: UtcDatetime
    closed_at: Optional[UtcDatetime] = None
    extra_data: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("extra_data", "metadata"), serialization_alias="metadata"
    )

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, v):
        return v or []


# =============================================================================
# STATUS HISTORY
# =============================================================================

class StatusUpdateCreate(CamelModel):
    """Request to append a status history entry"""
    status: str = Field(..., max_length=50)
    description: Optional[str] = None
    updated_by: Optional[int] = None
    internal_note: Optional[str] = None
    is_public: bool = True

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _strip_required(v, "status")


class StatusChangeRequest(CamelModel):
    """Body of PATCH /api/firs/{fir_id}/status"""
    status: str = Field(..., max_length=50)
    description: Optional[str] = None
    internal_note: Optional[str] = None
    is_public: bool = True

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _strip_required(v, "status")


class StatusUpdateOutput(CamelModel):
    id: int
    fir_id: str
    status: str
    description: str
    updated_by: Optional[int] = None
    timestamp: UtcDatetime
    internal_note: Optional[str] = None
    is_public: bool = True


# =============================================================================
# EVIDENCE
# =============================================================================

class EvidenceCreate(CamelModel):
    """Evidence metadata; the artifact itself is referenced by file_url"""
    file_url: str = Field(..., max_length=1000)
    file_type: str = Field(..., max_length=100)
    file_name: str = Field(..., max_length=255)
    file_size: int = Field(..., ge=0)
    description: Optional[str] = None
    uploaded_by: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    extra_data: Optional[Dict[str, Any]] = Field(None, alias="metadata")

    @field_validator("file_url", "file_type", "file_name")
    @classmethod
    def _required_text(cls, v, info):
        return _strip_required(v, info.field_name)

    @field_validator("tags")
    @classmethod
    def _tags(cls, v):
        return _clean_string_list(v)


class EvidenceOutput(CamelModel):
    id: int
    fir_id: str
    file_url: str
    file_type: str
    file_name: str
    file_size: int
    description: Optional[str] = None
    uploaded_by: Optional[int] = None
    uploaded_at: UtcDatetime
    tags: List[str] = Field(default_factory=list)
    extra_data: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("extra_data", "metadata"), serialization_alias="metadata"
    )

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, v):
        return v or []


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationCreate(CamelModel):
    user_id: int
    fir_id: Optional[str] = None
    title: str = Field(..., max_length=255)
    message: str
    type: str = Field("info", max_length=50)
    link: Optional[str] = Field(None, max_length=500)

    @field_validator("title", "message")
    @classmethod
    def _required_text(cls, v, info):
        return _strip_required(v, info.field_name)


class NotificationOutput(CamelModel):
    id: int
    user_id: int
    fir_id: Optional[str] = None
    title: str
    message: str
    type: str
    is_read: bool = False
    created_at: UtcDatetime
    link: Optional[str] = None


# =============================================================================
# SEARCH & ANALYTICS
# =============================================================================

class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchParams(CamelModel):
    """
    Flat predicate set for FIR search. All predicates are optional and
    combine with AND; list-valued predicates match any of their values.
    """
    query: Optional[str] = None
    status: Optional[Union[str, List[str]]] = None
    priority: Optional[Union[int, List[int]]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    ipc_section: Optional[str] = None
    tags: Optional[List[str]] = None
    user_id: Optional[int] = None
    officer_id: Optional[int] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, gt=0, le=100)
    sort_by: str = "createdAt"
    sort_direction: SortDirection = SortDirection.DESC

    @field_validator("query", "location", "ipc_section")
    @classmethod
    def _blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v is not None else v

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        if isinstance(v, list):
            return [_check_priority(p) for p in v]
        return _check_priority(v)


class SearchResult(CamelModel):
    items: List[FirOutput]
    total: int


class CrimeTypeCount(CamelModel):
    crime_type: str
    count: int


class StatusCount(CamelModel):
    status: str
    count: int


class PriorityCount(CamelModel):
    priority: int
    count: int


class MonthlyCount(CamelModel):
    month: int
    count: int


class TimeRangeAnalytics(CamelModel):
    total_firs: int
    status_distribution: List[StatusCount]
    priority_distribution: List[PriorityCount]
    crime_distribution: List[CrimeTypeCount]
    average_processing_time_days: float


# =============================================================================
# EXTRACTION
# =============================================================================

class ExtractRequest(CamelModel):
    """Free-text incident description"""
    user_input: str = Field(..., description="Raw description from the reporter")


class ExtractedFir(CamelModel):
    """Structured fields the text-understanding service must return"""
    crime: str
    ipc_sections: List[str] = Field(..., min_length=1)
    summary: str
    priority: int = Field(..., ge=1, le=5)
    date_time: Optional[str] = None
    location: Optional[str] = None

    @field_validator("crime", "summary")
    @classmethod
    def _required_text(cls, v, info):
        return _strip_required(v, info.field_name)

    @field_validator("ipc_sections")
    @classmethod
    def _sections(cls, v):
        cleaned = _clean_string_list(v)
        if not cleaned or len(cleaned) != len(v):
            raise ValueError("ipcSections must be a non-empty list of non-empty strings")
        return cleaned

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v):
        return _check_priority(v)

    @field_validator("date_time", "location", mode="before")
    @classmethod
    def _optional_text(cls, v):
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return v.strip() or None


class ExtractionResult(ExtractedFir):
    """Extraction output with a provisional (not yet persisted) case id"""
    fir_id: str


class LegalQuestionRequest(CamelModel):
    question: str = Field(..., description="Question for the legal assistant")


class LegalAnswer(CamelModel):
    answer: str
    question: str


# =============================================================================
# SYSTEM
# =============================================================================

class HealthResponse(CamelModel):
    status: str
    version: str
    llm_mode: LLMMode
    llm_available: bool
    timestamp: UtcDatetime


class ErrorResponse(BaseModel):
    message: str
    code: str
    errors: Optional[List[Dict[str, Any]]] = None
