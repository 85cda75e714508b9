import pytest
from httpx import AsyncClient, ASGITransport
from peereval.core.database import Database
from peereval.main import create_app


@pytest.fixture
async def database():
    """
    A fresh in-memory database per test, built through the same Database
    class the application uses.
    """
    database = Database("sqlite+aiosqlite://")
    await database.create_tables()
    yield database
    await database.dispose()


@pytest.fixture
async def session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
async def client(database):
    # ASGITransport does not run the lifespan hook, so the database is attached by hand
    app = create_app()
    app.state.db = database
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
