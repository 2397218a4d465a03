"""SQLAlchemy database layer for listing-reels.

Provides the shared engine, session factory, and declarative base
used by the job store, credit ledger and work queue.
"""

from .base import Base
from .engine import configure_database, dispose_engine, get_db_session, get_engine, init_db

__all__ = ["Base", "configure_database", "dispose_engine", "get_db_session", "get_engine", "init_db"]
