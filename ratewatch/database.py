from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from ratewatch.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug)


async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db():
    """FastAPI dependency: yields AsyncSession per request."""
    async with async_session_factory() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency for operations that manage their own transactions."""
    return async_session_factory
