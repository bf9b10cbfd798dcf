"""
Shared test fixtures for ledger core tests

Provides database setup and the standard chart of accounts used across
service tests.
"""
import os

# Settings are read at import time; point them at SQLite before any ledger import
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ledger.db.base import Base


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let SQLAlchemy emit it
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    # Import all models to ensure they're registered with Base
    import ledger.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    from tests.factories import reset_sequences

    reset_sequences()
    create_tables(engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def chart(db_session):
    """
    Standard chart of accounts keyed by code.

    Covers cash/bank, receivables, fixed assets, payables, equity, revenue,
    discounts, expenses and the gain/loss account used by disposals.
    """
    from tests.factories import create_standard_chart

    return create_standard_chart(db_session)


@pytest.fixture
def open_period(db_session):
    """Open fiscal period for January 2026"""
    from tests.factories import create_test_period

    return create_test_period(db_session, year=2026, month=1)
