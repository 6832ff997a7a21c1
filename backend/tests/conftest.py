import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from factories import CONTRACT, RecordingNotifier
from traitvault.models import Base
from traitvault.seeds import seed_collection


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def collection(session_factory):
    async with session_factory() as session, session.begin():
        return await seed_collection(session, CONTRACT, "Stacks Punks")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def count_rows(session_factory):
    async def _count(model):
        async with session_factory() as session:
            return await session.scalar(select(func.count()).select_from(model))

    return _count
