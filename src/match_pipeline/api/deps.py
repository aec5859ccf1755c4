"""FastAPI dependency injection for sessions, configuration and delivery."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from match_pipeline.config.pipeline import PipelineConfig, load_pipeline_config
from match_pipeline.config.settings import get_settings
from match_pipeline.db.session import get_session_factory
from match_pipeline.notifications.delivery import DeliveryChannel, build_channel


def get_sessions() -> async_sessionmaker[AsyncSession]:
    """Session factory for operations that manage their own transaction."""
    return get_session_factory()


async def get_db(
    factory: async_sessionmaker[AsyncSession] = Depends(get_sessions),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session for request handling."""
    async with factory() as session:
        yield session


@lru_cache
def get_pipeline_config() -> PipelineConfig:
    return load_pipeline_config(get_settings().pipeline_config_path)


@lru_cache
def get_channel() -> DeliveryChannel:
    return build_channel(get_settings())
