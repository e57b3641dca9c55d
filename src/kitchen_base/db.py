import contextlib
import functools
import logging
import time

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from kitchen_base.settings import get_settings

logger = logging.getLogger(__name__)


@functools.lru_cache()
def get_engine() -> Engine:
    """
    Get SQLAlchemy engine (cached).

    The pool is bounded: DB_POOL_MIN persistent connections plus up to
    DB_POOL_MAX - DB_POOL_MIN overflow connections, recycled after
    DB_POOL_RECYCLE seconds.
    """
    settings = get_settings()
    return create_engine(
        settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_MIN,
        max_overflow=max(settings.DB_POOL_MAX - settings.DB_POOL_MIN, 0),
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        echo=False,
    )


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    """
    Get SQLAlchemy sessionmaker (cached).

    This function lazily initializes the sessionmaker to avoid import-time side effects.
    """
    engine = get_engine()
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    """
    Dependency generator for FastAPI to get database session.

    Yields a database session and ensures it's closed after use.
    """
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextlib.contextmanager
def session_scope(session_factory: sessionmaker | None = None):
    """Open a session, commit on success and roll back on error."""
    factory = session_factory or get_sessionmaker()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def ping(engine: Engine | None = None) -> None:
    """Run a trivial query. Raises if the database is unreachable."""
    engine = engine or get_engine()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def wait_for_database(engine: Engine | None = None) -> None:
    """
    Block until the database answers, retrying with increasing backoff.

    Raises the last OperationalError after DB_CONNECT_RETRIES attempts.
    """
    settings = get_settings()
    attempts = settings.DB_CONNECT_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            ping(engine)
            logger.info("Connected to database", extra={"attempt": attempt})
            return
        except OperationalError as e:
            if attempt == attempts:
                logger.error(f"Failed to connect to database after {attempts} attempts")
                raise
            wait = settings.DB_RETRY_DELAY * attempt
            logger.warning(
                f"Failed to connect to database, retrying in {wait:.0f}s: {e}",
                extra={"attempt": attempt},
            )
            time.sleep(wait)
