"""Test config and shared fixtures."""
import os

# Settings are read at import time: keep the app off the on-disk database
os.environ.setdefault("SQLITE_PATH", ":memory:")
os.environ.setdefault("DB_CREATE_ALL", "false")

import pytest
from functools import partial
from typing import AsyncGenerator, Callable
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from main import app
from catalog.books.models import Book
from datakit.database.sql_driver import SQLDriver, SyncSQLDriver
from datakit.repository.unit_of_work import UnitOfWork


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SYNC_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
async def driver() -> AsyncGenerator[SQLDriver, None]:
    """Async driver over a fresh in-memory database with all tables created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    driver = SQLDriver(engine=engine)
    await driver.create_all()
    yield driver
    await driver.disconnect()


@pytest.fixture
def session_factory(driver: SQLDriver):
    return driver.session_factory


@pytest.fixture
def uow_factory(session_factory) -> Callable[[], UnitOfWork]:
    """Factory producing async units of work on the test database."""
    return partial(UnitOfWork.from_session_factory, session_factory)


@pytest.fixture
def sync_uow_factory() -> Callable[[], UnitOfWork]:
    """Factory producing synchronous units of work on their own in-memory database."""
    engine = create_engine(
        TEST_SYNC_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    driver = SyncSQLDriver(engine=engine)
    driver.create_all()
    yield partial(UnitOfWork.from_session_factory, driver.session_factory)
    driver.disconnect()


@pytest.fixture
def make_book() -> Callable[..., Book]:
    """Build an unsaved Book; keyword arguments override the defaults."""
    def _make_book(**overrides) -> Book:
        fields = {"title": "Dune", "pages": 412, "genre": "SciFi"}
        fields.update(overrides)
        return Book(**fields)
    return _make_book


@pytest.fixture
async def sample_books(uow_factory, make_book) -> list:
    """Three committed books."""
    books = [
        make_book(title="Dune", pages=412, genre="SciFi", isbn="9780441013593"),
        make_book(title="Neuromancer", pages=271, genre="SciFi", isbn="9780441569595"),
        make_book(title="Emma", pages=474, genre="Classic", isbn="9780141439587"),
    ]
    async with uow_factory() as uow:
        await uow.repository_for(Book).add_range_async(books)
        await uow.commit_async()
    return books


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test client bound to the test database."""
    from catalog.books.api.router import get_session_factory

    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
