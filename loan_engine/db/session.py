from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from loan_engine.core.settings import get_settings


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, future=True, echo=False, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # autoflush stays off: staged changes reach the database only through an explicit flush.
    return async_sessionmaker(bind, expire_on_commit=False, autoflush=False)


engine = build_engine(get_settings().database_url)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
