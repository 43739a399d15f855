import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from gacha_api.app import create_app  # noqa: E402
from gacha_api.db.base import Base  # noqa: E402
from gacha_api.db.session import get_session  # noqa: E402
from gacha_api.observability.gacha import get_gacha_store  # noqa: E402
from gacha_api.services.configuration import get_config_cache  # noqa: E402
import gacha_api.models  # noqa: E402,F401


@pytest.fixture(autouse=True)
def _reset_process_state():
    get_config_cache().invalidate()
    get_gacha_store().reset()
    yield
    get_config_cache().invalidate()
    get_gacha_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    database = tmp_path / "gacha.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database}",
        future=True,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
