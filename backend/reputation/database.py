from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from reputation.config import get_settings

settings = get_settings()


def to_async_url(url: str) -> str:
    """Convert sqlite:/// to sqlite+aiosqlite:///"""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


database_url = to_async_url(settings.database_url)

engine = create_async_engine(database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with async_session() as session:
        yield session


def create_task_session_factory() -> async_sessionmaker:
    """
    Build a session factory for Celery tasks.

    Each task runs on its own short-lived event loop, so pooled
    connections from the application engine cannot be reused there.

    Returns:
        async_sessionmaker bound to a NullPool engine
    """
    task_engine = create_async_engine(database_url, echo=False, poolclass=NullPool)
    return async_sessionmaker(task_engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    # Register every model on Base.metadata before creating tables
    import reputation.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
