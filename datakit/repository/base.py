"""
Repository abstract base class and generic implementation.

A repository is bound to one session and one model. Reads query the session
(autoflush makes staged changes visible); add/remove/update only stage changes
that the owning unit of work commits or discards.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Tuple, Type, TypeVar, Union
from sqlalchemy import func, inspect as sa_inspect
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import SQLModel, Session, select
from sqlmodel.ext.asyncio.session import AsyncSession
from datakit.exceptions.errors import CancellationError, InvalidStateError, ValidationError, translate_db_errors
from .cancellation import run_cancellable

T = TypeVar("T", bound=SQLModel)

# SQL boolean expression (Book.pages > 400) or plain callable (lambda b: b.pages > 400)
Predicate = Union[ColumnElement, Callable[[Any], bool]]


class IRepository(ABC, Generic[T]):
    """Repository interface; defines the standard data access API."""

    @abstractmethod
    def get(self, predicate: Optional[Predicate] = None, **filters) -> Optional[T]:
        """First entity matching the predicate, or None."""
        pass

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        pass

    @abstractmethod
    def get_all(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                offset: int = 0, **filters) -> List[T]:
        """All entities matching the predicate (a new list on every call)."""
        pass

    @abstractmethod
    def count(self, predicate: Optional[Predicate] = None, **filters) -> int:
        pass

    @abstractmethod
    def add(self, entity: T) -> T:
        """Stage entity for insertion."""
        pass

    @abstractmethod
    def add_range(self, entities: Iterable[T]) -> List[T]:
        pass

    @abstractmethod
    def remove(self, entity: T) -> None:
        """Stage entity for deletion."""
        pass

    @abstractmethod
    def remove_range(self, entities: Iterable[T]) -> None:
        pass

    @abstractmethod
    def update(self, entity: T) -> T:
        """Stage modification of an existing entity, matched by id."""
        pass

    @abstractmethod
    def update_range(self, entities: Iterable[T]) -> List[T]:
        pass

    @abstractmethod
    async def get_async(self, predicate: Optional[Predicate] = None, *,
                        cancel: Optional[asyncio.Event] = None, **filters) -> Optional[T]:
        pass

    @abstractmethod
    async def get_by_id_async(self, id: Any, *, cancel: Optional[asyncio.Event] = None) -> Optional[T]:
        pass

    @abstractmethod
    async def get_all_async(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                            offset: int = 0, cancel: Optional[asyncio.Event] = None, **filters) -> List[T]:
        pass

    @abstractmethod
    async def count_async(self, predicate: Optional[Predicate] = None, *,
                          cancel: Optional[asyncio.Event] = None, **filters) -> int:
        pass

    @abstractmethod
    async def add_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        pass

    @abstractmethod
    async def add_range_async(self, entities: Iterable[T], *,
                              cancel: Optional[asyncio.Event] = None) -> List[T]:
        pass

    @abstractmethod
    async def remove_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> None:
        pass

    @abstractmethod
    async def remove_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> None:
        pass

    @abstractmethod
    async def update_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        pass

    @abstractmethod
    async def update_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> List[T]:
        pass


class Repository(IRepository[T]):
    """Generic SQLModel repository over a sync ``Session`` or an ``AsyncSession``.

    ``guard`` is called before every operation with ``mutating=True`` for
    staging calls; units of work use it to reject access in terminal states.
    ``on_staged(kind, count)`` is told about every successful staging call and
    ``on_interrupted(error)`` about async I/O cut short by a cancel signal.
    """

    def __init__(self, session: Union[Session, AsyncSession], model: Type[T],
                 guard: Optional[Callable[[bool], None]] = None,
                 on_staged: Optional[Callable[[str, int], None]] = None,
                 on_interrupted: Optional[Callable[[CancellationError], Awaitable[None]]] = None):
        self.session = session
        self.model = model
        self._guard = guard
        self._on_staged = on_staged
        self._on_interrupted = on_interrupted

    def __repr__(self) -> str:
        return f"Repository[{self.model.__name__}]"

    @property
    def is_async(self) -> bool:
        return isinstance(self.session, AsyncSession)

    # --- predicates ---

    def _split(self, predicate: Optional[Predicate], filters: dict) -> Tuple[Any, Optional[Callable]]:
        """Split a predicate into a SELECT statement and an in-Python filter."""
        statement = select(self.model)
        in_python = None
        if isinstance(predicate, ColumnElement):
            statement = statement.where(predicate)
        elif callable(predicate):
            in_python = predicate
        elif predicate is not None:
            raise TypeError(
                f"predicate must be a SQL expression or a callable, got {type(predicate).__name__}"
            )

        columns = sa_inspect(self.model).columns
        for key, value in filters.items():
            if key not in columns:
                raise ValueError(f"{self.model.__name__} has no column {key!r}")
            statement = statement.where(getattr(self.model, key) == value)
        return statement, in_python

    def _select_first(self, session: Session, predicate, filters) -> Optional[T]:
        statement, in_python = self._split(predicate, filters)
        if in_python is None:
            return session.exec(statement.limit(1)).first()
        for entity in session.exec(statement):
            if in_python(entity):
                return entity
        return None

    def _select_all(self, session: Session, predicate, limit, offset, filters) -> List[T]:
        statement, in_python = self._split(predicate, filters)
        if in_python is None:
            if offset:
                statement = statement.offset(offset)
            if limit is not None:
                statement = statement.limit(limit)
            return list(session.exec(statement).all())
        matches = [entity for entity in session.exec(statement) if in_python(entity)]
        end = None if limit is None else offset + limit
        return matches[offset:end]

    def _select_count(self, session: Session, predicate, filters) -> int:
        statement, in_python = self._split(predicate, filters)
        if in_python is not None:
            return sum(1 for entity in session.exec(statement) if in_python(entity))
        counting = select(func.count()).select_from(statement.subquery())
        return session.exec(counting).one()

    # --- staging ---

    def _checked(self, entities: Iterable[T]) -> List[T]:
        entities = list(entities)
        for entity in entities:
            if not isinstance(entity, self.model):
                raise TypeError(f"{self!r} cannot stage {type(entity).__name__}")
        return entities

    def _ensure_not_foreign(self, session: Session, entity: T) -> None:
        owner = sa_inspect(entity).session
        if owner is not None and owner is not session:
            raise InvalidStateError(
                f"{type(entity).__name__} {entity.id} belongs to another open session; "
                f"stage it in the unit of work that loaded it"
            )

    def _identity(self, session: Session, entity: T):
        """Identity key of an untracked entity plus the tracked instance sharing it, if any."""
        mapper = sa_inspect(self.model)
        if any(value is None for value in mapper.primary_key_from_instance(entity)):
            raise ValidationError(f"{type(entity).__name__} has no identifier")
        key = mapper.identity_key_from_instance(entity)
        return key, session.identity_map.get(key)

    def _stage_add(self, session: Session, entities: List[T]) -> None:
        for entity in entities:
            self._ensure_not_foreign(session, entity)
        session.add_all(entities)

    def _stage_remove(self, session: Session, entities: List[T]) -> None:
        for entity in entities:
            self._ensure_not_foreign(session, entity)
            state = sa_inspect(entity)
            if state.pending and state.session is session:
                # Only staged for insertion: un-stage it
                session.expunge(entity)
            elif state.transient:
                _, tracked = self._identity(session, entity)
                if tracked is not None:
                    session.delete(tracked)
                else:
                    make_transient_to_detached(entity)
                    session.delete(entity)
            else:
                session.delete(entity)

    def _stage_update(self, session: Session, entities: List[T]) -> None:
        mapper = sa_inspect(self.model)
        payload = [
            attr.key for attr in mapper.column_attrs
            if not any(column.primary_key for column in attr.columns)
        ]
        for entity in entities:
            self._ensure_not_foreign(session, entity)
            state = sa_inspect(entity)
            if state.session is session:
                continue  # tracked: changes flush on commit
            if state.detached:
                session.add(entity)
                continue
            _, tracked = self._identity(session, entity)
            if tracked is not None:
                for name in payload:
                    setattr(tracked, name, getattr(entity, name))
                continue
            # Attach an untracked instance as modified: every column is written
            make_transient_to_detached(entity)
            session.add(entity)
            for name in payload:
                if name in state.dict:
                    flag_modified(entity, name)

    # --- dispatch ---

    def _check(self, mutating: bool) -> None:
        if self._guard is not None:
            self._guard(mutating)

    def _sync_session(self) -> Session:
        return self.session.sync_session if self.is_async else self.session

    def _read(self, operation: str, fn: Callable[[Session], Any]):
        self._check(False)
        if self.is_async:
            raise InvalidStateError(
                f"{self!r}.{operation}: synchronous reads need a synchronous session, "
                f"use {operation}_async"
            )
        with translate_db_errors(f"{self.model.__name__}.{operation}"):
            return fn(self.session)

    def _staged(self, kind: str, entities: List[T]) -> None:
        if self._on_staged is not None:
            self._on_staged(kind, len(entities))

    def _stage(self, operation: str, fn: Callable[[Session], Any]):
        self._check(True)
        with translate_db_errors(f"{self.model.__name__}.{operation}"):
            return fn(self._sync_session())

    async def _run(self, operation: str, fn: Callable[[Session], Any]):
        with translate_db_errors(f"{self.model.__name__}.{operation}"):
            if self.is_async:
                return await self.session.run_sync(fn)
            return fn(self.session)

    async def _io(self, operation: str, fn: Callable[[Session], Any], cancel: Optional[asyncio.Event],
                  mutating: bool = False):
        self._check(mutating)
        try:
            return await run_cancellable(self._run(operation, fn), cancel, f"{self!r}.{operation}")
        except CancellationError as e:
            if e.interrupted and self._on_interrupted is not None:
                await self._on_interrupted(e)
            raise

    # --- synchronous API ---

    def get(self, predicate: Optional[Predicate] = None, **filters) -> Optional[T]:
        return self._read("get", lambda s: self._select_first(s, predicate, filters))

    def get_by_id(self, id: Any) -> Optional[T]:
        return self._read("get_by_id", lambda s: s.get(self.model, id))

    def get_all(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                offset: int = 0, **filters) -> List[T]:
        return self._read("get_all", lambda s: self._select_all(s, predicate, limit, offset, filters))

    def count(self, predicate: Optional[Predicate] = None, **filters) -> int:
        return self._read("count", lambda s: self._select_count(s, predicate, filters))

    def add(self, entity: T) -> T:
        self.add_range([entity])
        return entity

    def add_range(self, entities: Iterable[T]) -> List[T]:
        entities = self._checked(entities)
        self._stage("add_range", lambda s: self._stage_add(s, entities))
        self._staged("added", entities)
        return entities

    def remove(self, entity: T) -> None:
        self.remove_range([entity])

    def remove_range(self, entities: Iterable[T]) -> None:
        entities = self._checked(entities)
        self._stage("remove_range", lambda s: self._stage_remove(s, entities))
        self._staged("removed", entities)

    def update(self, entity: T) -> T:
        self.update_range([entity])
        return entity

    def update_range(self, entities: Iterable[T]) -> List[T]:
        entities = self._checked(entities)
        self._stage("update_range", lambda s: self._stage_update(s, entities))
        self._staged("updated", entities)
        return entities

    # --- asynchronous API ---

    async def get_async(self, predicate: Optional[Predicate] = None, *,
                        cancel: Optional[asyncio.Event] = None, **filters) -> Optional[T]:
        return await self._io("get", lambda s: self._select_first(s, predicate, filters), cancel)

    async def get_by_id_async(self, id: Any, *, cancel: Optional[asyncio.Event] = None) -> Optional[T]:
        return await self._io("get_by_id", lambda s: s.get(self.model, id), cancel)

    async def get_all_async(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                            offset: int = 0, cancel: Optional[asyncio.Event] = None, **filters) -> List[T]:
        return await self._io(
            "get_all", lambda s: self._select_all(s, predicate, limit, offset, filters), cancel
        )

    async def count_async(self, predicate: Optional[Predicate] = None, *,
                          cancel: Optional[asyncio.Event] = None, **filters) -> int:
        return await self._io("count", lambda s: self._select_count(s, predicate, filters), cancel)

    async def add_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        await self.add_range_async([entity], cancel=cancel)
        return entity

    async def add_range_async(self, entities: Iterable[T], *,
                              cancel: Optional[asyncio.Event] = None) -> List[T]:
        entities = self._checked(entities)
        await self._io("add_range", lambda s: self._stage_add(s, entities), cancel, mutating=True)
        self._staged("added", entities)
        return entities

    async def remove_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> None:
        await self.remove_range_async([entity], cancel=cancel)

    async def remove_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> None:
        entities = self._checked(entities)
        await self._io("remove_range", lambda s: self._stage_remove(s, entities), cancel, mutating=True)
        self._staged("removed", entities)

    async def update_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        await self.update_range_async([entity], cancel=cancel)
        return entity

    async def update_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> List[T]:
        entities = self._checked(entities)
        await self._io("update_range", lambda s: self._stage_update(s, entities), cancel, mutating=True)
        self._staged("updated", entities)
        return entities


class DelegatingRepository(IRepository[T]):
    """Entity-specific repository base: wraps a generic :class:`Repository` and
    forwards the whole capability set to it. Subclasses set ``model`` and add
    domain lookups on top of ``self.repository``.
    """

    model: Type[T]

    def __init__(self, repository: Repository[T]):
        if repository.model is not self.model:
            raise TypeError(f"{type(self).__name__} needs a {self.model.__name__} repository, got {repository!r}")
        self.repository = repository

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.repository!r})"

    @property
    def session(self):
        return self.repository.session

    def get(self, predicate: Optional[Predicate] = None, **filters) -> Optional[T]:
        return self.repository.get(predicate, **filters)

    def get_by_id(self, id: Any) -> Optional[T]:
        return self.repository.get_by_id(id)

    def get_all(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                offset: int = 0, **filters) -> List[T]:
        return self.repository.get_all(predicate, limit=limit, offset=offset, **filters)

    def count(self, predicate: Optional[Predicate] = None, **filters) -> int:
        return self.repository.count(predicate, **filters)

    def add(self, entity: T) -> T:
        return self.repository.add(entity)

    def add_range(self, entities: Iterable[T]) -> List[T]:
        return self.repository.add_range(entities)

    def remove(self, entity: T) -> None:
        self.repository.remove(entity)

    def remove_range(self, entities: Iterable[T]) -> None:
        self.repository.remove_range(entities)

    def update(self, entity: T) -> T:
        return self.repository.update(entity)

    def update_range(self, entities: Iterable[T]) -> List[T]:
        return self.repository.update_range(entities)

    async def get_async(self, predicate: Optional[Predicate] = None, *,
                        cancel: Optional[asyncio.Event] = None, **filters) -> Optional[T]:
        return await self.repository.get_async(predicate, cancel=cancel, **filters)

    async def get_by_id_async(self, id: Any, *, cancel: Optional[asyncio.Event] = None) -> Optional[T]:
        return await self.repository.get_by_id_async(id, cancel=cancel)

    async def get_all_async(self, predicate: Optional[Predicate] = None, *, limit: Optional[int] = None,
                            offset: int = 0, cancel: Optional[asyncio.Event] = None, **filters) -> List[T]:
        return await self.repository.get_all_async(
            predicate, limit=limit, offset=offset, cancel=cancel, **filters
        )

    async def count_async(self, predicate: Optional[Predicate] = None, *,
                          cancel: Optional[asyncio.Event] = None, **filters) -> int:
        return await self.repository.count_async(predicate, cancel=cancel, **filters)

    async def add_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        return await self.repository.add_async(entity, cancel=cancel)

    async def add_range_async(self, entities: Iterable[T], *,
                              cancel: Optional[asyncio.Event] = None) -> List[T]:
        return await self.repository.add_range_async(entities, cancel=cancel)

    async def remove_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> None:
        await self.repository.remove_async(entity, cancel=cancel)

    async def remove_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> None:
        await self.repository.remove_range_async(entities, cancel=cancel)

    async def update_async(self, entity: T, *, cancel: Optional[asyncio.Event] = None) -> T:
        return await self.repository.update_async(entity, cancel=cancel)

    async def update_range_async(self, entities: Iterable[T], *,
                                 cancel: Optional[asyncio.Event] = None) -> List[T]:
        return await self.repository.update_range_async(entities, cancel=cancel)
