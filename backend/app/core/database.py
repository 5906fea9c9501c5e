"""
Async database engine, session factory, and ORM base.

Rules enforced:
  • Every DB call goes through AsyncSession (no sync connections).
  • The key-value store opens one session per operation; the session
    factory is the only thing it needs from this module.
  • The declarative Base is shared across all models so Alembic can
    auto-detect schema changes from a single metadata object.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from app.core.config import settings


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.endswith("://"))


def _build_engine(url: str) -> AsyncEngine:
    """Create the async engine for DATABASE_URL."""
    if _is_memory_sqlite(url):
        # In-memory SQLite lives inside one connection, so share it.
        return create_async_engine(
            url,
            echo=settings.DEBUG,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    # pool_pre_ping: drop stale connections before reuse
    # echo: SQL logging — only in debug mode
    return create_async_engine(url, echo=settings.DEBUG, pool_pre_ping=True)


# ── Engine ──────────────────────────────────────────────────
engine = _build_engine(settings.DATABASE_URL)

# ── Session factory ─────────────────────────────────────────
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # avoid lazy-load issues after commit
)


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""
