# gymcheckin/database.py
from __future__ import annotations

from typing import Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from gymcheckin.config import Settings

Base = declarative_base()


def _normalize_database_url(url: str | None) -> str | None:
    """
    Hosted Postgres providers hand out URLs as:
      - postgres://...
      - postgresql://...

    SQLAlchemy's default driver for those schemes is psycopg2, but this
    project ships psycopg3 (`psycopg[binary]`).

    Normalize to `postgresql+psycopg://...` so deployments don't fail with
    `ModuleNotFoundError: No module named 'psycopg2'`.
    """
    if not url:
        return url
    raw = url.strip()
    if not raw:
        return raw
    # If a driver is already specified (e.g., postgresql+psycopg), leave it alone.
    if raw.startswith("postgresql+"):
        return raw
    if raw.startswith("postgres://"):
        return "postgresql+psycopg://" + raw[len("postgres://") :]
    if raw.startswith("postgresql://"):
        return "postgresql+psycopg://" + raw[len("postgresql://") :]
    return raw


def _is_memory_sqlite(url: str) -> bool:
    return url in {"sqlite://", "sqlite:///:memory:"} or ":memory:" in url


def _engine_kwargs_for(url: str) -> dict:
    if not url:
        return {}
    if url.startswith("postgresql+psycopg"):
        # Transaction-mode poolers (PgBouncer) break server-side prepared
        # statements; psycopg3 disables them with `prepare_threshold=None`.
        return {"connect_args": {"prepare_threshold": None}}
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if _is_memory_sqlite(url):
            # One shared connection, otherwise every pooled connection gets its own empty DB.
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {}


def engine_info(engine: Engine) -> dict:
    try:
        url = engine.url
        return {
            "driver": getattr(url, "drivername", None),
            "host": getattr(url, "host", None),
            "port": getattr(url, "port", None),
            "database": getattr(url, "database", None),
        }
    except Exception:
        return {"driver": None, "host": None, "port": None, "database": None}


def _try_engine(url: str) -> Tuple[Optional[Engine], Optional[str]]:
    if not url:
        return None, "empty url"
    try:
        engine = create_engine(url, echo=False, pool_pre_ping=True, **_engine_kwargs_for(url))
        with engine.connect() as conn:
            conn.execute(text("select 1"))
        return engine, None
    except Exception as e:
        return None, str(e)[:200]


def build_engine(settings: Settings) -> Tuple[Engine, str]:
    """
    Connect to DATABASE_URL, falling back to SQLite unless DATABASE_URL_STRICT is set.

    Returns the engine and its source: "DATABASE_URL" | "SQLITE".
    """
    engine = None
    source = None

    database_url = _normalize_database_url(settings.database_url)
    if database_url:
        engine, engine_error = _try_engine(database_url)
        if engine_error:
            print(f"[DB] DATABASE_URL connection failed: {engine_error}")
        else:
            source = "DATABASE_URL"

    if engine is None and database_url and settings.database_url_strict:
        raise RuntimeError("DATABASE_URL_STRICT is enabled, refusing to fall back after DATABASE_URL failure.")

    if engine is None:
        engine, engine_error = _try_engine(settings.sqlite_fallback_url)
        if engine_error:
            print(f"[DB] SQLite fallback failed: {engine_error}")
            raise RuntimeError("Database initialization failed after all fallbacks.")
        source = "SQLITE"

    info = engine_info(engine)
    if database_url and source != "DATABASE_URL":
        print(f"[DB] Using fallback database (source={source}).")
        print("[DB] Hint: set DATABASE_URL_STRICT=1 to disable fallbacks after DATABASE_URL failure.")
    print(
        f"[DB] Active database: source={source} driver={info.get('driver')} "
        f"host={info.get('host')} port={info.get('port')} db={info.get('database')}"
    )
    return engine, source


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
