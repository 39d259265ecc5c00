from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession


def create_db_engine(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine, create_tables: bool = False):
    """Verify the connection; optionally create tables (tests, local dev)."""
    async with engine.begin() as conn:
        if create_tables:
            from bot.db.models import Base
            await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))
