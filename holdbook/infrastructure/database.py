from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from holdbook.core import Settings
from holdbook.models import Base


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by the settings"""
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}  # Enable connection health checks
    if not settings.DB_DSN.startswith("sqlite"):
        options["pool_size"] = settings.DB_POOL_SIZE
    return create_async_engine(settings.DB_DSN, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
