import pytest

from oshire_api.db import init_db, make_engine, make_sessionmaker


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield make_sessionmaker(engine)
    await engine.dispose()
