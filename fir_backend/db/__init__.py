"""
Database Package - SQLAlchemy
=============================

Persistence layer for FIR records, status history, evidence and notifications.
"""

from .models import (
    Base,
    User, Fir, StatusUpdate, Evidence, Notification,
    utcnow,
)
from .session import get_db, get_db_session, init_db, drop_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base", "utcnow",
    # Entities
    "User", "Fir", "StatusUpdate", "Evidence", "Notification",
    # Session
    "get_db", "get_db_session", "init_db", "drop_db", "get_engine", "reset_engine",
]
