"""
FIR status lifecycle.

Statuses are an open set of strings: the known values below are what the
service itself emits, but any non-empty label is accepted and any status may
follow any other. Only CLOSED is terminal, which drives ``closed_at``.

Every transition, including registration, yields exactly one StatusUpdate.
The functions here mutate ORM objects but never commit; the store wraps them
in a transaction.
"""

import enum
from typing import Optional

from .db.models import Fir, StatusUpdate, utcnow
from .errors import ValidationError


class FirStatus(str, enum.Enum):
    """Status labels the service knows about"""
    REGISTERED = "REGISTERED"
    INVESTIGATION_PENDING = "INVESTIGATION_PENDING"
    EVIDENCE_COLLECTION = "EVIDENCE_COLLECTION"
    UNDER_INVESTIGATION = "UNDER_INVESTIGATION"
    CHARGESHEET_FILED = "CHARGESHEET_FILED"
    COURT_PROCEEDINGS = "COURT_PROCEEDINGS"
    CLOSED = "CLOSED"


INITIAL_STATUS = FirStatus.REGISTERED.value
TERMINAL_STATUS = FirStatus.CLOSED.value

MAX_STATUS_LENGTH = 50


def normalize_status(value) -> str:
    """
    Coerce a status label to its stored form.

    Known statuses pass through unchanged, unknown labels are kept verbatim
    (trimmed). Empty or over-long labels are rejected.
    """
    if isinstance(value, FirStatus):
        return value.value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            "Status is required",
            [{"field": "status", "message": "must be a non-empty string", "type": "value_error"}],
        )
    status = value.strip()
    if len(status) > MAX_STATUS_LENGTH:
        raise ValidationError(
            "Status is too long",
            [{"field": "status", "message": f"at most {MAX_STATUS_LENGTH} characters", "type": "value_error"}],
        )
    return status


def is_terminal(status: str) -> bool:
    return status == TERMINAL_STATUS


def registration_description(fir_id: str) -> str:
    return f"FIR has been registered in the system with ID {fir_id}"


def transition_description(status: str) -> str:
    return f"Status updated to {status}"


def sync_closed_at(fir: Fir, now=None) -> None:
    """Keep closed_at set exactly while the FIR is CLOSED."""
    if is_terminal(fir.status):
        if fir.closed_at is None:
            fir.closed_at = now or utcnow()
    else:
        fir.closed_at = None


def genesis_update(fir: Fir, actor_id: Optional[int] = None) -> StatusUpdate:
    """
    Build the registration entry for a freshly inserted FIR.

    The entry is always REGISTERED, even when the FIR was created directly
    in another status.
    """
    return StatusUpdate(
        fir_id=fir.fir_id,
        status=INITIAL_STATUS,
        description=registration_description(fir.fir_id),
        updated_by=actor_id,
        timestamp=fir.created_at or utcnow(),
        is_public=True,
    )


def apply_transition(
    fir: Fir,
    status,
    actor_id: Optional[int] = None,
    description: Optional[str] = None,
    internal_note: Optional[str] = None,
    is_public: bool = True,
) -> StatusUpdate:
    """
    Move a FIR to ``status`` and return the history entry describing it.

    Re-applying the current status is allowed and still recorded.
    """
    new_status = normalize_status(status)
    now = utcnow()

    fir.status = new_status
    fir.updated_at = now
    sync_closed_at(fir, now)

    return StatusUpdate(
        fir_id=fir.fir_id,
        status=new_status,
        description=(description or "").strip() or transition_description(new_status),
        updated_by=actor_id,
        timestamp=now,
        internal_note=internal_note,
        is_public=is_public,
    )
