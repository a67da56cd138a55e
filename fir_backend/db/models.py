"""
SQLAlchemy Models for Database
==============================

Schema for FIR (first information report) case tracking:
- Users (reporters, officers, admins)
- FIR records with status history
- Evidence metadata (the binaries live elsewhere)
- User notifications

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, ForeignKey,
    BigInteger, Index, JSON, CheckConstraint
)
from sqlalchemy.orm import relationship, declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column here."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """Reporter, officer or admin"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), default="civilian", nullable=False)  # civilian/officer/admin
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# FIR RECORDS
# =============================================================================

class Fir(Base):
    """First information report / case record"""
    __tablename__ = "firs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fir_id = Column(String(32), nullable=False, unique=True)  # FIR-YYYYMMDD-NNN
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    officer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Incident details
    crime = Column(Text, nullable=False)
    ipc_sections = Column(JSONB, nullable=False, default=list)
    summary = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False)
    date_time = Column(String(100), nullable=True)  # as described, not normalized
    location = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    district = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    suspects = Column(JSONB, nullable=True)
    victims = Column(JSONB, nullable=True)
    witnesses = Column(JSONB, nullable=True)

    status = Column(String(50), nullable=False, default="REGISTERED")
    tags = Column(JSONB, default=list)
    is_anonymous = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    closed_at = Column(DateTime, nullable=True)  # set only while status == CLOSED
    extra_data = Column(JSONB, default=dict)  # Note: 'metadata' is reserved by SQLAlchemy

    __table_args__ = (
        CheckConstraint("priority >= 1 AND priority <= 5", name="ck_fir_priority_range"),
        Index("ix_fir_status", "status"),
        Index("ix_fir_created", "created_at"),
        Index("ix_fir_user", "user_id"),
        Index("ix_fir_officer", "officer_id"),
    )

    # Relationships
    reporter = relationship("User", foreign_keys=[user_id])
    officer = relationship("User", foreign_keys=[officer_id])
    status_updates = relationship(
        "StatusUpdate",
        back_populates="fir",
        cascade="all, delete-orphan",
        order_by="StatusUpdate.id",
    )
    evidence = relationship("Evidence", back_populates="fir", cascade="all, delete-orphan")


class StatusUpdate(Base):
    """Immutable status history entry"""
    __tablename__ = "status_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fir_id = Column(String(32), ForeignKey("firs.fir_id", ondelete="CASCADE"), nullable=False)
    status = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    internal_note = Column(Text, nullable=True)
    is_public = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_status_update_fir", "fir_id", "timestamp"),
    )

    # Relationships
    fir = relationship("Fir", back_populates="status_updates")


class Evidence(Base):
    """Evidence metadata; file_url points at wherever the artifact is stored"""
    __tablename__ = "evidence"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fir_id = Column(String(32), ForeignKey("firs.fir_id", ondelete="CASCADE"), nullable=False)
    file_url = Column(String(1000), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)
    tags = Column(JSONB, default=list)
    extra_data = Column(JSONB, default=dict)

    __table_args__ = (
        Index("ix_evidence_fir", "fir_id"),
    )

    # Relationships
    fir = relationship("Fir", back_populates="evidence")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(Base):
    """Per-user notification, optionally about a FIR"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    fir_id = Column(String(32), ForeignKey("firs.fir_id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False, default="info")  # status_update/assignment/info
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    link = Column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_notification_user_read", "user_id", "is_read"),
    )

    # Relationships
    user = relationship("User", back_populates="notifications")
