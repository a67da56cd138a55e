"""
FIR Record Store
================

Sole writer of users, FIRs, status history, evidence metadata and
notifications.

Every mutating operation runs in one transaction (``_transaction``): the
session commits when the block finishes and rolls back on any exception, so
compound writes such as FIR + genesis status entry, or status change +
history append, land together or not at all.

Lookups (``get_*``) return ``None`` for missing rows; operations that act on
an existing row raise ``NotFoundError`` instead.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import lifecycle, search
from .db.models import Evidence, Fir, Notification, StatusUpdate, User, utcnow
from .errors import ConflictError, FirServiceError, NotFoundError, StoreFailure, ValidationError
from .identifiers import generate_fir_id
from .schemas import (
    EvidenceCreate,
    FirCreate,
    FirUpdate,
    NotificationCreate,
    SearchParams,
    SearchResult,
    StatusUpdateCreate,
    UserCreate,
    UserUpdate,
)
from .security import get_password_hash

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Dict[str, Any]]

# Columns update_fir never touches directly
_FIR_IMMUTABLE_FIELDS = {"id", "fir_id", "created_at", "updated_at", "closed_at"}
_USER_IMMUTABLE_FIELDS = {"id", "username", "created_at", "updated_at", "password_hash"}


def _coerce(model: type, payload: Payload, what: str):
    """Validate a dict (or accept a ready model) against ``model``."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(f"Invalid {what} data", exc) from exc


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "unique" in message or "duplicate" in message


def _is_fir_id_collision(exc: IntegrityError) -> bool:
    return _is_unique_violation(exc) and "fir_id" in str(getattr(exc, "orig", exc)).lower()


def _paginate(page: int, limit: int) -> int:
    if page < 1:
        raise ValidationError("page must be >= 1", [{"field": "page", "message": "must be >= 1", "type": "value_error"}])
    if limit < 1:
        raise ValidationError("limit must be > 0", [{"field": "limit", "message": "must be > 0", "type": "value_error"}])
    return (page - 1) * limit


class FirStore:
    """
    Record store bound to one SQLAlchemy session.

    Usage:
        with get_db_session() as db:
            store = FirStore(db)
            fir = store.create_fir({"crime": "theft", "ipcSections": ["IPC 379"],
                                    "summary": "...", "priority": 3})
    """

    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------------------------------
    # Transaction scope
    # -------------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            yield self.session
            self.session.commit()
        except FirServiceError:
            self.session.rollback()
            raise
        except IntegrityError as exc:
            self.session.rollback()
            if _is_fir_id_collision(exc):
                logger.warning(f"{operation}: case identifier collision")
                raise ConflictError("A FIR with this identifier already exists") from exc
            if _is_unique_violation(exc):
                raise ConflictError("A record with these unique values already exists") from exc
            logger.warning(f"{operation}: integrity violation: {exc.orig}")
            raise ValidationError(
                "Referenced record does not exist or value violates a constraint",
                [{"field": "", "message": str(exc.orig), "type": "integrity_error"}],
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"{operation} failed: {exc}", exc_info=True)
            raise StoreFailure(f"{operation} failed") from exc
        except Exception:
            self.session.rollback()
            raise

    def _read(self, operation: str, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"{operation} failed: {exc}", exc_info=True)
            raise StoreFailure(f"{operation} failed") from exc

    def _require_fir(self, fir_id: str, for_update: bool = False) -> Fir:
        stmt = select(Fir).where(Fir.fir_id == fir_id)
        if for_update:
            # Row lock on PostgreSQL; SQLite serializes writers anyway
            stmt = stmt.with_for_update()
        fir = self.session.scalar(stmt)
        if fir is None:
            raise NotFoundError(f"FIR {fir_id} not found")
        return fir

    def _require_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def create_user(self, payload: Payload) -> User:
        data = _coerce(UserCreate, payload, "user")
        with self._transaction("create_user"):
            now = utcnow()
            user = User(
                username=data.username,
                password_hash=get_password_hash(data.password),
                email=data.email,
                full_name=data.full_name,
                role=data.role,
                phone=data.phone,
                created_at=now,
                updated_at=now,
            )
            self.session.add(user)
            self.session.flush()
        logger.info(f"Created user {user.id} ({user.username})")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self._read("get_user", lambda: self.session.get(User, user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._read(
            "get_user_by_username",
            lambda: self.session.scalar(select(User).where(User.username == username)),
        )

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._read(
            "get_user_by_email",
            lambda: self.session.scalar(select(User).where(User.email == email)),
        )

    def update_user(self, user_id: int, updates: Payload) -> User:
        """Apply a partial update; updated_at is refreshed when anything changes."""
        if isinstance(updates, dict):
            protected = sorted(set(updates) & _USER_IMMUTABLE_FIELDS)
            if protected:
                raise ValidationError(
                    "Cannot update protected user fields",
                    [{"field": f, "message": "field is read-only", "type": "value_error"} for f in protected],
                )
        data = _coerce(UserUpdate, updates, "user").model_dump(exclude_unset=True)

        with self._transaction("update_user"):
            user = self._require_user(user_id)
            password = data.pop("password", None)
            if password is not None:
                user.password_hash = get_password_hash(password)
            for field, value in data.items():
                setattr(user, field, value)
            if data or password is not None:
                user.updated_at = utcnow()
        return user

    def update_user_last_login(self, user_id: int) -> None:
        with self._transaction("update_user_last_login"):
            self._require_user(user_id).last_login = utcnow()

    def get_user_count(self) -> int:
        return self._read(
            "get_user_count",
            lambda: self.session.scalar(select(func.count()).select_from(User)),
        )

    def get_users(self, page: int = 1, limit: int = 10) -> List[User]:
        offset = _paginate(page, limit)
        stmt = select(User).order_by(User.username.asc()).offset(offset).limit(limit)
        return self._read("get_users", lambda: list(self.session.scalars(stmt)))

    def get_users_by_role(self, role: str) -> List[User]:
        stmt = select(User).where(User.role == role).order_by(User.username.asc())
        return self._read("get_users_by_role", lambda: list(self.session.scalars(stmt)))

    # -------------------------------------------------------------------------
    # FIRs
    # -------------------------------------------------------------------------

    def create_fir(self, payload: Payload, actor_id: Optional[int] = None) -> Fir:
        """
        Insert a FIR together with its REGISTERED history entry.

        Raises:
            ValidationError: payload is malformed
            ConflictError: the case identifier is already taken
        """
        data = _coerce(FirCreate, payload, "FIR")
        fields = data.model_dump(exclude={"fir_id", "status"})

        with self._transaction("create_fir"):
            now = utcnow()
            fir = Fir(
                fir_id=data.fir_id or generate_fir_id(),
                status=lifecycle.normalize_status(data.status or lifecycle.INITIAL_STATUS),
                created_at=now,
                updated_at=now,
                **fields,
            )
            lifecycle.sync_closed_at(fir, now)
            self.session.add(fir)
            # Flush first so an identifier collision surfaces before the history row
            self.session.flush()
            self.session.add(lifecycle.genesis_update(fir, actor_id or data.user_id))
            self.session.flush()

        logger.info(f"Registered FIR {fir.fir_id} (crime={fir.crime!r}, priority={fir.priority})")
        return fir

    def get_fir(self, fir_id: str) -> Optional[Fir]:
        return self._read(
            "get_fir",
            lambda: self.session.scalar(select(Fir).where(Fir.fir_id == fir_id)),
        )

    def get_all_firs(self, page: int = 1, limit: int = 10) -> List[Fir]:
        offset = _paginate(page, limit)
        stmt = (
            select(Fir)
            .order_by(Fir.created_at.desc(), Fir.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self._read("get_all_firs", lambda: list(self.session.scalars(stmt)))

    def update_fir(self, fir_id: str, updates: Payload, actor_id: Optional[int] = None) -> Fir:
        """
        Merge supplied fields into a FIR.

        A changed ``status`` goes through the lifecycle, so it is recorded in
        the history and ``closed_at`` follows it.
        """
        if isinstance(updates, dict):
            protected = sorted(
                set(updates) & (_FIR_IMMUTABLE_FIELDS | {"firId", "createdAt", "updatedAt", "closedAt"})
            )
            if protected:
                raise ValidationError(
                    "Cannot update protected FIR fields",
                    [{"field": f, "message": "field is read-only", "type": "value_error"} for f in protected],
                )
        data = _coerce(FirUpdate, updates, "FIR update").model_dump(exclude_unset=True)
        new_status = data.pop("status", None)

        with self._transaction("update_fir"):
            fir = self._require_fir(fir_id, for_update=True)
            for field, value in data.items():
                setattr(fir, field, value)
            fir.updated_at = utcnow()
            if new_status is not None and lifecycle.normalize_status(new_status) != fir.status:
                self.session.add(lifecycle.apply_transition(fir, new_status, actor_id))
                self._notify_reporter(fir)
        return fir

    def update_fir_status(
        self,
        fir_id: str,
        status: str,
        actor_id: Optional[int] = None,
        description: Optional[str] = None,
        internal_note: Optional[str] = None,
        is_public: bool = True,
    ) -> Fir:
        """Change status and append the matching history entry atomically."""
        with self._transaction("update_fir_status"):
            fir = self._require_fir(fir_id, for_update=True)
            previous = fir.status
            self.session.add(
                lifecycle.apply_transition(fir, status, actor_id, description, internal_note, is_public)
            )
            if is_public:
                self._notify_reporter(fir)
        logger.info(f"FIR {fir_id}: {previous} -> {fir.status}")
        return fir

    def _notify_reporter(self, fir: Fir) -> None:
        if fir.user_id is None:
            return
        self.session.add(Notification(
            user_id=fir.user_id,
            fir_id=fir.fir_id,
            title=f"FIR {fir.fir_id} updated",
            message=lifecycle.transition_description(fir.status),
            type="status_update",
            link=f"/firs/{fir.fir_id}",
            created_at=utcnow(),
        ))

    def delete_fir(self, fir_id: str) -> None:
        """Delete a FIR with its status history and evidence rows."""
        with self._transaction("delete_fir"):
            self.session.delete(self._require_fir(fir_id))
        logger.info(f"Deleted FIR {fir_id}")

    def get_firs_by_user(self, user_id: int) -> List[Fir]:
        stmt = select(Fir).where(Fir.user_id == user_id).order_by(Fir.created_at.desc(), Fir.id.desc())
        return self._read("get_firs_by_user", lambda: list(self.session.scalars(stmt)))

    def get_firs_by_officer(self, officer_id: int) -> List[Fir]:
        stmt = select(Fir).where(Fir.officer_id == officer_id).order_by(Fir.created_at.desc(), Fir.id.desc())
        return self._read("get_firs_by_officer", lambda: list(self.session.scalars(stmt)))

    def get_fir_count(self) -> int:
        return self._read(
            "get_fir_count",
            lambda: self.session.scalar(select(func.count()).select_from(Fir)),
        )

    # -------------------------------------------------------------------------
    # Status history
    # -------------------------------------------------------------------------

    def create_status_update(self, fir_id: str, payload: Payload) -> StatusUpdate:
        """
        Record a status history entry and move the FIR to that status.

        This is the same transition as ``update_fir_status``; exactly one
        history row is written.
        """
        data = _coerce(StatusUpdateCreate, payload, "status update")
        with self._transaction("create_status_update"):
            fir = self._require_fir(fir_id, for_update=True)
            entry = lifecycle.apply_transition(
                fir, data.status, data.updated_by, data.description, data.internal_note, data.is_public
            )
            self.session.add(entry)
            if data.is_public:
                self._notify_reporter(fir)
            self.session.flush()
        return entry

    def get_status_updates(self, fir_id: str, public_only: bool = False) -> List[StatusUpdate]:
        """History for a FIR, oldest first."""
        stmt = select(StatusUpdate).where(StatusUpdate.fir_id == fir_id)
        if public_only:
            stmt = stmt.where(StatusUpdate.is_public.is_(True))
        stmt = stmt.order_by(StatusUpdate.timestamp.asc(), StatusUpdate.id.asc())
        return self._read("get_status_updates", lambda: list(self.session.scalars(stmt)))

    # -------------------------------------------------------------------------
    # Evidence
    # -------------------------------------------------------------------------

    def create_evidence(self, fir_id: str, payload: Payload) -> Evidence:
        data = _coerce(EvidenceCreate, payload, "evidence")
        with self._transaction("create_evidence"):
            fir = self._require_fir(fir_id)
            item = Evidence(fir_id=fir.fir_id, uploaded_at=utcnow(), **data.model_dump())
            self.session.add(item)
            fir.updated_at = utcnow()
            self.session.flush()
        logger.info(f"Evidence {item.id} ({item.file_name}) attached to FIR {fir_id}")
        return item

    def get_evidence_by_fir(self, fir_id: str) -> List[Evidence]:
        stmt = (
            select(Evidence)
            .where(Evidence.fir_id == fir_id)
            .order_by(Evidence.uploaded_at.desc(), Evidence.id.desc())
        )
        return self._read("get_evidence_by_fir", lambda: list(self.session.scalars(stmt)))

    def get_evidence_by_id(self, evidence_id: int) -> Optional[Evidence]:
        return self._read("get_evidence_by_id", lambda: self.session.get(Evidence, evidence_id))

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def create_notification(self, payload: Payload) -> Notification:
        data = _coerce(NotificationCreate, payload, "notification")
        with self._transaction("create_notification"):
            self._require_user(data.user_id)
            notification = Notification(created_at=utcnow(), **data.model_dump())
            self.session.add(notification)
            self.session.flush()
        return notification

    def get_user_notifications(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        return self._read("get_user_notifications", lambda: list(self.session.scalars(stmt)))

    def mark_notification_as_read(self, notification_id: int) -> None:
        with self._transaction("mark_notification_as_read"):
            notification = self.session.get(Notification, notification_id)
            if notification is None:
                raise NotFoundError(f"Notification {notification_id} not found")
            notification.is_read = True

    def mark_all_notifications_as_read(self, user_id: int) -> int:
        """Returns the number of notifications that changed."""
        with self._transaction("mark_all_notifications_as_read"):
            result = self.session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session="fetch")
            )
        return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Search & analytics (read-only, see search.py)
    # -------------------------------------------------------------------------

    def search_firs(self, params: Union[SearchParams, Dict[str, Any], None] = None) -> SearchResult:
        return self._read("search_firs", lambda: search.search_firs(self.session, params))

    def get_crime_type_distribution(self):
        return self._read("get_crime_type_distribution", lambda: search.get_crime_type_distribution(self.session))

    def get_status_distribution(self):
        return self._read("get_status_distribution", lambda: search.get_status_distribution(self.session))

    def get_priority_distribution(self):
        return self._read("get_priority_distribution", lambda: search.get_priority_distribution(self.session))

    def get_monthly_stats(self, year: int):
        return self._read("get_monthly_stats", lambda: search.get_monthly_stats(self.session, year))

    def get_analytics_by_time_range(self, start: datetime, end: datetime):
        return self._read(
            "get_analytics_by_time_range",
            lambda: search.get_analytics_by_time_range(self.session, start, end),
        )
