"""Database configuration and base setup for dagplane."""

from typing import Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _ensure_sync_driver(url: URL) -> URL:
    """Force a synchronous driver for Alembic and the ORM engine."""

    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+psycopg")
    elif url.drivername.startswith("postgresql+"):
        # Normalize any async driver variants to psycopg (sync)
        if any(token in url.drivername for token in ("async", "aiopg")):
            url = url.set(drivername="postgresql+psycopg")
    elif url.drivername.startswith("sqlite+"):
        if "aiosqlite" in url.drivername:
            url = url.set(drivername="sqlite")

    return url


def get_database_url(settings: Settings) -> str:
    """Database URL from ``DATABASE_URL`` or the individual ``DB_*`` parameters."""

    if settings.database_url:
        url = make_url(settings.database_url)
    else:
        host, _, port = settings.db_host.partition(":")
        url = URL.create(
            "postgresql+psycopg",
            username=settings.db_user or None,
            password=settings.db_password or None,
            host=host,
            port=int(port) if port else None,
            database=settings.db_name,
            query={"sslmode": settings.db_ssl_mode} if settings.db_ssl_mode else {},
        )
    # render_as_string(hide_password=False) keeps the real password; str(url) masks it
    return _ensure_sync_driver(url).render_as_string(hide_password=False)


def create_db_engine(settings: Settings, database_url: Optional[str] = None) -> Engine:
    database_url = database_url or get_database_url(settings)

    if database_url.startswith("sqlite"):
        # SQLite configuration for development/testing
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # PostgreSQL configuration for production
    idle = int(settings.max_idle_db_conn)
    open_ = int(settings.max_open_db_conn)
    return create_engine(
        database_url,
        pool_size=idle,
        max_overflow=max(0, open_ - idle),
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def get_session_factory(engine: Engine) -> sessionmaker:
    """Get a sessionmaker bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a session and close it afterwards."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def init_database(engine: Engine) -> None:
    """Create all tables. Production deployments run the Alembic migrations instead."""
    # Import all models to ensure they're registered with Base
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_database(engine: Engine) -> None:
    """Drop all database tables. Use with caution!"""
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
