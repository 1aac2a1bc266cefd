"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Pre-pinged pooled engines for server databases
- Test database support (SQLite)
- Table definitions for users, subscriptions and payment events
"""
import logging
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Text, Index, ForeignKey, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
import os

from mzone.core.config import settings

logger = logging.getLogger("mzone")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL
    if test_url:
        return test_url

    return settings.DATABASE_URL


def database_configured() -> bool:
    return bool(_engine is not None or get_database_url())


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _engine is not None:
        _engine.dispose()

    if make_url(url).get_backend_name() == "sqlite":
        # SQLite serializes writers itself; wait on its lock rather than failing fast
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            pool_pre_ping=True,
            echo=False,
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Drop the current engine (tests switch databases between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
            session.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Identity store
users = Table(
    'users',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('full_name', Text, nullable=False),
    Column('email', String(320), nullable=False, unique=True),
    Column('password_hash', String(100), nullable=False),
    Column('is_subscribed', Boolean, nullable=False, default=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# One row per successfully reconciled gateway transaction
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
    Column('plan', String(50), nullable=False),
    Column('amount', Integer, nullable=False),  # minor currency units
    Column('reference', String(100), nullable=False, unique=True),
    Column('discount_code', String(50), nullable=True),
    Column('status', String(20), nullable=False, server_default='active'),
    Column('start_date', DateTime(timezone=True), nullable=False),
    Column('end_date', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_subscriptions_user_status', 'user_id', 'status'),
    Index('idx_subscriptions_created_at', 'created_at'),
)

# Webhook delivery log
payment_events = Table(
    'payment_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('event_type', String(100), nullable=False),
    Column('reference', String(100), nullable=True),
    Column('payload_hash', String(64), nullable=False),
    Column('processed', Boolean, nullable=False, default=False),
    Column('error', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Index('idx_payment_events_reference', 'reference'),
    Index('idx_payment_events_type_processed', 'event_type', 'processed'),
)
