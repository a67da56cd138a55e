"""
FIR Search & Analytics
======================

Read-only queries over the ``firs`` table:
- ``search_firs``: multi-predicate filtered, sorted, paginated search that
  also reports the unpaginated total
- group-by distributions (crime type, status, priority)
- monthly counts and time-window analytics

Array columns (``ipc_sections``, ``tags``) are JSON, so membership is tested
by matching the JSON-encoded element inside the serialized array. That works
the same on SQLite and PostgreSQL.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import String, and_, cast, func, or_, select
from sqlalchemy.orm import Session

from .db.models import Fir
from .errors import ValidationError
from .lifecycle import TERMINAL_STATUS
from .schemas import (
    CrimeTypeCount,
    FirOutput,
    MonthlyCount,
    PriorityCount,
    SearchParams,
    SearchResult,
    SortDirection,
    StatusCount,
    TimeRangeAnalytics,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# sortBy values accepted from callers, camelCase or snake_case
SORTABLE_COLUMNS = {
    "createdAt": Fir.created_at,
    "updatedAt": Fir.updated_at,
    "closedAt": Fir.closed_at,
    "priority": Fir.priority,
    "status": Fir.status,
    "crime": Fir.crime,
    "firId": Fir.fir_id,
    "location": Fir.location,
    "id": Fir.id,
}
SORTABLE_COLUMNS.update({
    "created_at": Fir.created_at,
    "updated_at": Fir.updated_at,
    "closed_at": Fir.closed_at,
    "fir_id": Fir.fir_id,
})


# =============================================================================
# Predicate helpers
# =============================================================================

def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains(column, text: str):
    """Case-insensitive substring match."""
    return column.ilike(f"%{_escape_like(text)}%", escape="\\")


def _json_array_contains(column, element: str):
    """True when the JSON array in ``column`` holds ``element`` exactly."""
    encoded = json.dumps(element)
    return cast(column, String).like(f"%{_escape_like(encoded)}%", escape="\\")


def _as_list(value) -> Optional[List]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def build_conditions(params: SearchParams) -> List:
    """Translate search parameters into SQLAlchemy WHERE clauses (ANDed)."""
    conditions = []

    if params.query:
        conditions.append(or_(
            _contains(Fir.crime, params.query),
            _contains(Fir.summary, params.query),
            _contains(Fir.location, params.query),
            _contains(Fir.fir_id, params.query),
        ))

    statuses = _as_list(params.status)
    if statuses:
        if len(statuses) == 1:
            conditions.append(Fir.status == statuses[0])
        else:
            conditions.append(Fir.status.in_(statuses))

    priorities = _as_list(params.priority)
    if priorities:
        if len(priorities) == 1:
            conditions.append(Fir.priority == priorities[0])
        else:
            conditions.append(Fir.priority.in_(priorities))

    if params.start_date is not None:
        conditions.append(Fir.created_at >= _naive_utc(params.start_date))

    if params.end_date is not None:
        conditions.append(Fir.created_at <= _naive_utc(params.end_date))

    if params.location:
        conditions.append(_contains(Fir.location, params.location))

    if params.user_id is not None:
        conditions.append(Fir.user_id == params.user_id)

    if params.officer_id is not None:
        conditions.append(Fir.officer_id == params.officer_id)

    if params.ipc_section:
        conditions.append(_json_array_contains(Fir.ipc_sections, params.ipc_section))

    tags = [t for t in (params.tags or []) if t]
    if tags:
        conditions.append(or_(*[_json_array_contains(Fir.tags, t) for t in tags]))

    return conditions


def _naive_utc(value: datetime) -> datetime:
    # Columns hold naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def coerce_params(params: Union[SearchParams, Dict[str, Any], None]) -> SearchParams:
    if params is None:
        return SearchParams()
    if isinstance(params, SearchParams):
        return params
    try:
        return SearchParams.model_validate(params)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic("Invalid search parameters", exc) from exc


def _sort_column(sort_by: str):
    column = SORTABLE_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(
            "Invalid sort field",
            [{"field": "sortBy", "message": f"cannot sort by {sort_by!r}", "type": "value_error"}],
        )
    return column


# =============================================================================
# Search
# =============================================================================

def search_firs(session: Session, params: Union[SearchParams, Dict[str, Any], None] = None) -> SearchResult:
    """
    Filtered, sorted, paginated FIR search.

    Returns the requested page plus the number of matches ignoring
    pagination. No parameters means every FIR, newest first.
    """
    params = coerce_params(params)
    column = _sort_column(params.sort_by)
    conditions = build_conditions(params)
    where = and_(*conditions) if conditions else None

    count_stmt = select(func.count()).select_from(Fir)
    stmt = select(Fir)
    if where is not None:
        count_stmt = count_stmt.where(where)
        stmt = stmt.where(where)

    total = session.scalar(count_stmt) or 0

    if params.sort_direction == SortDirection.ASC:
        stmt = stmt.order_by(column.asc(), Fir.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Fir.id.desc())

    stmt = stmt.offset((params.page - 1) * params.limit).limit(params.limit)
    firs = list(session.scalars(stmt))

    logger.debug(f"search_firs: {len(conditions)} predicates, {total} matches, page {params.page}")
    return SearchResult(items=[FirOutput.model_validate(f) for f in firs], total=total)


# =============================================================================
# Analytics
# =============================================================================

def _created_between(start: Optional[datetime], end: Optional[datetime]) -> List:
    conditions = []
    if start is not None:
        conditions.append(Fir.created_at >= _naive_utc(start))
    if end is not None:
        conditions.append(Fir.created_at <= _naive_utc(end))
    return conditions


def _crime_distribution(session: Session, conditions: List) -> List[CrimeTypeCount]:
    count = func.count(Fir.id).label("count")
    stmt = (
        select(Fir.crime, count)
        .where(*conditions)
        .group_by(Fir.crime)
        .order_by(count.desc(), Fir.crime.asc())
    )
    return [CrimeTypeCount(crime_type=crime, count=n) for crime, n in session.execute(stmt)]


def _status_distribution(session: Session, conditions: List) -> List[StatusCount]:
    count = func.count(Fir.id).label("count")
    stmt = (
        select(Fir.status, count)
        .where(*conditions)
        .group_by(Fir.status)
        .order_by(count.desc(), Fir.status.asc())
    )
    return [StatusCount(status=status, count=n) for status, n in session.execute(stmt)]


def _priority_distribution(session: Session, conditions: List) -> List[PriorityCount]:
    stmt = (
        select(Fir.priority, func.count(Fir.id))
        .where(*conditions)
        .group_by(Fir.priority)
        .order_by(Fir.priority.asc())
    )
    return [PriorityCount(priority=priority, count=n) for priority, n in session.execute(stmt)]


def get_crime_type_distribution(session: Session) -> List[CrimeTypeCount]:
    """FIR counts per crime type, most common first."""
    return _crime_distribution(session, [])


def get_status_distribution(session: Session) -> List[StatusCount]:
    """FIR counts per status, most common first."""
    return _status_distribution(session, [])


def get_priority_distribution(session: Session) -> List[PriorityCount]:
    """FIR counts per priority, ordered 1..5 for fixed chart layout."""
    return _priority_distribution(session, [])


def get_monthly_stats(session: Session, year: int) -> List[MonthlyCount]:
    """
    Number of FIRs created in each month of ``year`` (UTC).

    Always twelve entries; months without FIRs report zero.
    """
    if not 1 <= year <= 9998:
        raise ValidationError(
            "Invalid year",
            [{"field": "year", "message": "must be between 1 and 9998", "type": "value_error"}],
        )

    stats = []
    for month in range(1, 13):
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
        count = session.scalar(
            select(func.count()).select_from(Fir).where(Fir.created_at >= start, Fir.created_at < end)
        )
        stats.append(MonthlyCount(month=month, count=count or 0))
    return stats


def get_analytics_by_time_range(session: Session, start: datetime, end: datetime) -> TimeRangeAnalytics:
    """
    Aggregates over FIRs created within ``[start, end]``.

    ``average_processing_time_days`` is the mean creation-to-closure time of
    CLOSED FIRs in the window, or 0.0 when none are closed.
    """
    if start is None or end is None:
        raise ValidationError(
            "Time range requires start and end",
            [{"field": "startDate" if start is None else "endDate", "message": "required", "type": "missing"}],
        )
    if _naive_utc(start) > _naive_utc(end):
        raise ValidationError(
            "Invalid time range",
            [{"field": "startDate", "message": "must not be after endDate", "type": "value_error"}],
        )

    conditions = _created_between(start, end)

    total = session.scalar(select(func.count()).select_from(Fir).where(*conditions)) or 0

    closed_rows = session.execute(
        select(Fir.created_at, Fir.closed_at).where(
            *conditions,
            Fir.status == TERMINAL_STATUS,
            Fir.closed_at.is_not(None),
        )
    ).all()

    average_days = 0.0
    if closed_rows:
        durations = [
            (closed_at - created_at).total_seconds() / SECONDS_PER_DAY
            for created_at, closed_at in closed_rows
        ]
        average_days = sum(durations) / len(durations)

    return TimeRangeAnalytics(
        total_firs=total,
        status_distribution=_status_distribution(session, conditions),
        priority_distribution=_priority_distribution(session, conditions),
        crime_distribution=_crime_distribution(session, conditions),
        average_processing_time_days=average_days,
    )
