"""
Unit of Work: one session, the repositories opened on it, and one commit or rollback.
"""

import uuid
from collections import Counter
from enum import Enum
from typing import Callable, Dict, Optional, Type, TypeVar, Union
from sqlmodel import SQLModel, Session
from sqlmodel.ext.asyncio.session import AsyncSession
from datakit.exceptions.errors import CancellationError, InvalidStateError, translate_db_errors
from datakit.logging.logger import get_logger
from .base import DelegatingRepository, Repository

logger = get_logger("unit_of_work")

T = TypeVar("T", bound=SQLModel)
D = TypeVar("D", bound=DelegatingRepository)


class UnitOfWorkState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class UnitOfWork:
    """Owns one session; every repository it hands out shares that session, so
    their staged changes commit or roll back together.

    Works over a synchronous ``Session`` (``commit``/``rollback`` and ``with``)
    or an ``AsyncSession`` (``commit_async``/``rollback_async`` and
    ``async with``). The ``*_async`` methods also accept a synchronous session.

    Leaving a ``with`` block without committing discards staged changes. So does
    a cancel signal that interrupts I/O in flight: the unit of work moves to
    ``ROLLED_BACK`` because the session may hold a partial flush.
    """

    def __init__(self, session: Optional[Union[Session, AsyncSession]] = None):
        """Initialize UnitOfWork; session must be provided (e.g. UnitOfWork.from_session_factory())."""
        if session is None:
            raise ValueError("Session must be provided. Use UnitOfWork.from_session_factory() or pass session explicitly.")

        self.session = session
        self.state = UnitOfWorkState.OPEN
        self.released = False
        self._touched = False
        self.staged = Counter()
        self.id = uuid.uuid4().hex[:8]
        self._repositories: Dict[type, Repository] = {}
        self._specialized: Dict[type, DelegatingRepository] = {}

    @classmethod
    def from_session_factory(cls, session_factory: Callable[[], Union[Session, AsyncSession]]) -> "UnitOfWork":
        """Open a new session from ``session_factory`` and wrap it."""
        return cls(session=session_factory())

    def __repr__(self) -> str:
        return f"UnitOfWork[{self.id}, {self.state.value}]"

    @property
    def is_async(self) -> bool:
        return isinstance(self.session, AsyncSession)

    # --- repositories ---

    def _guard(self, mutating: bool) -> None:
        if self.released or self.state is UnitOfWorkState.ROLLED_BACK:
            raise InvalidStateError(f"{self!r} has ended; open a new unit of work")
        if mutating and self.state is not UnitOfWorkState.OPEN:
            raise InvalidStateError(f"{self!r} is {self.state.value}; changes can no longer be staged")
        if mutating:
            self._touched = True

    def repository_for(self, model: Type[T]) -> Repository[T]:
        """Get or create the repository for ``model`` (one per unit of work)."""
        self._guard(False)
        repository = self._repositories.get(model)
        if repository is None:
            repository = Repository(
                self.session, model, guard=self._guard,
                on_staged=self._record, on_interrupted=self._interrupted
            )
            self._repositories[model] = repository
            logger.debug(f"{self!r} opened {repository!r}")
        return repository

    def get_repository(self, repo_class: Type[D]) -> D:
        """Get or create an entity-specific repository wrapping ``repository_for(repo_class.model)``."""
        self._guard(False)
        repository = self._specialized.get(repo_class)
        if repository is None:
            repository = repo_class(self.repository_for(repo_class.model))
            self._specialized[repo_class] = repository
        return repository

    # --- transaction ---

    def _record(self, kind: str, count: int) -> None:
        self.staged[kind] += count

    def _pending_summary(self) -> str:
        return " ".join(f"{kind}={self.staged[kind]}" for kind in ("added", "updated", "removed"))

    async def _interrupted(self, error: CancellationError) -> None:
        if self.state is not UnitOfWorkState.OPEN:
            return
        logger.warning(f"{self!r} rolled back after interrupted I/O: {error.message}")
        self.state = UnitOfWorkState.ROLLED_BACK
        with translate_db_errors("rollback"):
            if self.is_async:
                await self.session.rollback()
            else:
                self.session.rollback()

    def _discarding(self) -> bool:
        """Whether releasing must roll back staged or flushed changes; logs the outcome."""
        session = self.session.sync_session if self.is_async else self.session
        if self._touched or session.new or session.dirty or session.deleted:
            logger.warning(f"{self!r} discarding staged changes ({self._pending_summary()})")
            return True
        logger.debug(f"{self!r} closed without changes")
        return False

    def _begin_commit(self) -> str:
        if self.state is not UnitOfWorkState.OPEN or self.released:
            raise InvalidStateError(f"Cannot commit {self!r}")
        return self._pending_summary()

    def _require_sync(self, alternative: str) -> None:
        if self.is_async:
            raise InvalidStateError(f"{self!r} wraps an AsyncSession; use {alternative}")

    def commit(self) -> None:
        """Apply every staged change in one transaction, or none of them."""
        self._require_sync("commit_async()")
        summary = self._begin_commit()
        try:
            with translate_db_errors("commit"):
                self.session.commit()
        except Exception as e:
            logger.error(f"{self!r} commit failed ({summary}): {e}")
            self.state = UnitOfWorkState.ROLLED_BACK
            self.session.rollback()
            raise
        self.state = UnitOfWorkState.COMMITTED
        logger.info(f"{self!r} committed ({summary})")

    async def commit_async(self) -> None:
        """Async variant of :meth:`commit`."""
        if not self.is_async:
            self.commit()
            return
        summary = self._begin_commit()
        try:
            with translate_db_errors("commit"):
                await self.session.commit()
        except Exception as e:
            logger.error(f"{self!r} commit failed ({summary}): {e}")
            self.state = UnitOfWorkState.ROLLED_BACK
            await self.session.rollback()
            raise
        self.state = UnitOfWorkState.COMMITTED
        logger.info(f"{self!r} committed ({summary})")

    def rollback(self) -> None:
        """Discard staged changes and release the session. Safe to call again."""
        if self.released:
            return
        self._require_sync("rollback_async()")
        try:
            if self.state is UnitOfWorkState.OPEN:
                self.state = UnitOfWorkState.ROLLED_BACK
                # Rolling back expires loaded instances; skip it when nothing was staged
                if self._discarding():
                    with translate_db_errors("rollback"):
                        self.session.rollback()
        finally:
            self._release()

    async def rollback_async(self) -> None:
        """Async variant of :meth:`rollback`."""
        if not self.is_async:
            self.rollback()
            return
        if self.released:
            return
        try:
            if self.state is UnitOfWorkState.OPEN:
                self.state = UnitOfWorkState.ROLLED_BACK
                if self._discarding():
                    with translate_db_errors("rollback"):
                        await self.session.rollback()
        finally:
            await self._release_async()

    def flush(self) -> None:
        """Push staged changes inside the open transaction (e.g. to surface constraint errors early)."""
        self._require_sync("flush_async()")
        self._guard(True)
        with translate_db_errors("flush"):
            self.session.flush()

    async def flush_async(self) -> None:
        if not self.is_async:
            self.flush()
            return
        self._guard(True)
        with translate_db_errors("flush"):
            await self.session.flush()

    def _release(self) -> None:
        self.released = True
        self._repositories.clear()
        self._specialized.clear()
        with translate_db_errors("close"):
            self.session.close()

    async def _release_async(self) -> None:
        self.released = True
        self._repositories.clear()
        self._specialized.clear()
        with translate_db_errors("close"):
            await self.session.close()

    # --- context managers ---

    def __enter__(self) -> "UnitOfWork":
        self._require_sync("async with")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.rollback()

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.rollback_async()
