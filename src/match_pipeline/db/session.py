"""Async engine and session factory shared by the API, worker and CLI."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from match_pipeline.config.settings import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(echo: bool = False) -> AsyncEngine:
    """Return a cached async engine for ``settings.database_url``."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_settings().database_url, echo=echo, pool_pre_ping=True)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return a cached session factory bound to the engine.

    Sessions do not expire on commit so result objects stay readable
    after the consent transaction closes.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory
