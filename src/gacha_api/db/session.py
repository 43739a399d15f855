from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gacha_api.core.settings import settings


def _engine_options(database_url: str) -> dict[str, object]:
    if database_url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing fast
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, future=True, **_engine_options(settings.database_url))
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session
