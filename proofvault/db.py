from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, inspect as sa_inspect, text
from sqlalchemy.orm import Session, sessionmaker

from proofvault.models import Base

_lock = threading.Lock()
_engine = None
_SessionLocal = None

DATA_DIR = Path(__file__).parent / "data"

# Columns added after the first release of the onboarding_sessions table.
_SESSION_COLUMNS = {
    "upload_attempt_count": "INTEGER DEFAULT 0",
    "start_over_count": "INTEGER DEFAULT 0",
    "start_over_disabled": "BOOLEAN DEFAULT 0",
    "founder_email": "VARCHAR(100)",
    "status": "VARCHAR(20) DEFAULT 'active'",
    "previous_session_id": "VARCHAR(36)",
    "version": "INTEGER NOT NULL DEFAULT 1",
}


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        if db_path is None:
            db_path = os.environ.get("PROOFVAULT_DB_PATH") or DATA_DIR / "proofvault.db"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{db_path}"
        _engine = create_engine(url, connect_args={"check_same_thread": False})
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        _migrate_existing_db(_engine)


def _migrate_existing_db(engine) -> None:
    """Add columns that may be missing in older databases."""
    inspector = sa_inspect(engine)
    if not inspector.has_table("onboarding_sessions"):
        return
    columns = {col["name"] for col in inspector.get_columns("onboarding_sessions")}
    missing = [(name, ddl) for name, ddl in _SESSION_COLUMNS.items() if name not in columns]
    if not missing:
        return
    with engine.begin() as conn:
        for name, ddl in missing:
            conn.execute(text(f"ALTER TABLE onboarding_sessions ADD COLUMN {name} {ddl}"))


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager providing a transactional session scope.

    Usage (background jobs, MCP server, scripts)::

        with session_scope() as session:
            ...
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
