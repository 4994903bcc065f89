"""
Database connection and session management.
"""
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from wa_logger.core.config import get_settings
from wa_logger.core.logging import get_logger

logger = get_logger(__name__)

# Create base class for models
Base = declarative_base()

# Engine and session factory (initialized lazily)
_engine = None
_SessionLocal = None


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    db_path = database_url.replace("sqlite:///", "")
    if not db_path or db_path == ":memory:":
        return
    if db_path.startswith("./"):
        db_path = db_path[2:]
    db_dir = Path(db_path).parent
    if db_dir and not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created database directory: {db_dir}")


def build_engine(database_url: str, echo: bool = False):
    """Create an engine with the SQLite pragmas the models rely on."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        _ensure_sqlite_directory(database_url)

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        pool_pre_ping=True,
    )

    # Reaction and status rows reference messages
    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.debug)
        logger.info("Database engine created", extra={"extra_data": {"database_url": settings.database_url}})
    return _engine


def get_session_factory():
    """Get or create the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Dependency to get database session."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(engine) -> None:
    """Create every model table on the given engine."""
    from wa_logger.models import contact, group, message, receipt  # noqa: F401 - Import to register models

    Base.metadata.create_all(bind=engine)


def init_db() -> None:
    """Initialize database tables."""
    create_tables(get_engine())
    logger.info("Database tables created")


def close_db() -> None:
    """Release the connection pool; in-flight sessions finish on their own."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
        logger.info("Database connection pool closed")
    _engine = None
    _SessionLocal = None


def check_db_connection(db: Optional[Session] = None) -> bool:
    """Check if database is reachable, through ``db`` when given."""
    try:
        if db is not None:
            db.execute(text("SELECT 1"))
            return True
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
