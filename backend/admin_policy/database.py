from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def _engine_options() -> dict:
    options: dict = {"echo": settings.debug, "future": True}
    if settings.is_sqlite:
        # SQLite pools take no sizing options; a busy timeout lets concurrent
        # writers queue on the database lock instead of failing.
        options["connect_args"] = {"timeout": 30}
        return options
    options.update(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
    )
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

# expire_on_commit=False keeps ORM objects readable after commit. Their
# attributes are NOT refreshed from the database: services that reuse an
# object after commit must re-query or call `await session.refresh(obj)`.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
