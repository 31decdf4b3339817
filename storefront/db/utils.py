from typing import Any, Dict
from sqlalchemy.pool import StaticPool

def _normalize_db_url(url: str | None) -> str | None:
    # hosted postgres often hands out "postgres://..." , asyncpg/SQLAlchemy needs "postgresql+asyncpg://..."
    if not url:
        return None
    if url.startswith("postgres://",):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        # a single shared connection keeps an in-memory database alive across sessions
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}
