"""Database session management."""

from collections.abc import Generator
from typing import Any, Callable

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from riskwatch.config import get_settings
from riskwatch.models import Alert

settings = get_settings()

# SQLite connections are shared with the monitor thread
_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    connect_args=_connect_args,
    echo=False,  # Set to True for SQL query logging
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, Any, None]:
    """Get database session.

    Usage with FastAPI dependency injection:
        @app.get("/alerts")
        def list_alerts(db: Session = Depends(get_db)):
            return db.query(AlertRecord).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def alert_recorder(session_factory: Callable[[], Session] = SessionLocal) -> Callable[[Alert], None]:
    """Build a monitor alert sink that writes each alert to the database.

    Args:
        session_factory: Creates a session per alert

    Returns:
        Callable suitable for ``RiskMonitor(alert_sinks=[...])``
    """
    from riskwatch.db.models import record_alert

    def _record(alert: Alert) -> None:
        db = session_factory()
        try:
            record_alert(db, alert)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    return _record


def init_db() -> None:
    """Initialize database (create all tables).

    Note: In production, use Alembic migrations instead.
    This is only for testing and development.
    """
    from riskwatch.db.models import Base

    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    """Drop all tables.

    WARNING: This will delete all data!
    Only use in testing.
    """
    from riskwatch.db.models import Base

    Base.metadata.drop_all(bind=engine)
