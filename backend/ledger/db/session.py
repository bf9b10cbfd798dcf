"""
Database session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledger.core.settings import settings
from ledger.logging_config import get_logger

logger = get_logger(__name__)

connection_string = settings.database_url

# SQLite needs check_same_thread off; pool tuning only applies to server databases
if connection_string.startswith("sqlite"):
    engine = create_engine(
        connection_string,
        echo=settings.DB_ECHO,
        connect_args={"check_same_thread": False},
    )
else:
    logger.info(f"Database connection: {settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}")
    engine = create_engine(
        connection_string,
        echo=settings.DB_ECHO,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Yield a session scoped to one request.

    Usage:
        db = next(get_db())
        ledger = JournalLedger(db)
        ...
        db.commit()  # Caller commits
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
