from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from app.core.config import settings

_engine = None


def _report_connection_failure(exc: Exception) -> None:
    """Print high-signal diagnostics when the application cannot reach the facility database."""
    print(f"Warning: Could not connect to database: {exc}")
    print("The application will start but facility commits will fail until the connection succeeds.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        print(f"  Unable to parse DATABASE_URL ({parse_error}); skipping detailed diagnostics.")
        return

    print("  Database connection settings:")
    print(f"    Dialect: {url.get_backend_name()} (driver: {url.get_driver_name() or 'default'})")
    print(f"    Host: {url.host or 'localhost'}")
    print(f"    Database: {url.database}")


def build_engine(database_url: str):
    """
    Create an engine for ``database_url``.

    SQLite connections are shared across the commit and request threads, and
    in-memory databases keep a single connection so every session sees the
    same tables.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)
    if url.database in (None, "", ":memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, connect_args={"check_same_thread": False})


def get_engine():
    global _engine
    if _engine is None:
        try:
            _engine = build_engine(settings.database_url)
            # Test connection eagerly so failures surface immediately.
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            _report_connection_failure(e)
            # Keep the engine anyway so callers can proceed (may still fail later).
            _engine = build_engine(settings.database_url)
    return _engine


def set_engine(engine) -> None:
    """Swap the process-wide engine (used by tests and one-off scripts)."""
    global _engine
    _engine = engine


Base = declarative_base()
