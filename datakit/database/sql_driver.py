from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, Session
from sqlmodel.ext.asyncio.session import AsyncSession
from .base import BaseDatabaseDriver


class SQLDriver(BaseDatabaseDriver):
    """Async engine plus the session factory units of work draw sessions from."""

    def __init__(self, url: str = None, echo: bool = False, engine: AsyncEngine = None):
        self.engine = engine or create_async_engine(url, echo=echo, future=True)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def connect(self):
        async with self.engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

    async def disconnect(self):
        await self.engine.dispose()

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)


class SyncSQLDriver:
    """Blocking counterpart of :class:`SQLDriver` for synchronous units of work."""

    def __init__(self, url: str = None, echo: bool = False, engine=None):
        self.engine = engine or create_engine(url, echo=echo, future=True)
        self.session_factory = sessionmaker(
            self.engine, class_=Session, expire_on_commit=False
        )

    def create_all(self):
        SQLModel.metadata.create_all(self.engine)

    def disconnect(self):
        self.engine.dispose()
