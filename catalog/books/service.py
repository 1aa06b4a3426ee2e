import uuid
from contextlib import asynccontextmanager
from typing import Callable, List, Optional
from datakit.exceptions.errors import CancellationError, DataAccessError, ValidationError
from datakit.exceptions.handler import BusinessException
from datakit.logging.logger import get_logger
from datakit.repository.unit_of_work import UnitOfWork
from .models import Book
from .repository import BookRepository
from .schemas import BookCreate, BookUpdate

logger = get_logger("book_service")

UnitOfWorkFactory = Callable[[], UnitOfWork]


class BookService:
    """Book use cases; each one runs in its own unit of work."""

    def __init__(self, uow_factory: UnitOfWorkFactory):
        """Initialize BookService with a factory producing a fresh UnitOfWork per use case."""
        self.uow_factory = uow_factory

    @asynccontextmanager
    async def _use_case(self, action: str):
        """Open a unit of work; on any failure roll it back before the error propagates."""
        async with self.uow_factory() as uow:
            try:
                yield uow
            except BusinessException:
                await uow.rollback_async()
                raise
            except CancellationError as e:
                await uow.rollback_async()
                logger.info(f"{action} cancelled: {e.message}")
                raise
            except ValidationError as e:
                await uow.rollback_async()
                logger.warning(f"{action} rejected: {e.message}")
                raise BusinessException(f"{action} failed: data conflict", code=409) from e
            except DataAccessError as e:
                await uow.rollback_async()
                logger.error(f"{action} failed: {e.message}")
                raise BusinessException(f"{action} failed: storage unavailable", code=500) from e
            except Exception:
                await uow.rollback_async()
                raise

    async def _require(self, books: BookRepository, book_id: uuid.UUID) -> Book:
        book = await books.get_by_id_async(book_id)
        if book is None:
            raise BusinessException(f"Book {book_id} not found", code=404)
        return book

    async def _ensure_isbn_free(self, books: BookRepository, isbn: Optional[str], owner: Optional[uuid.UUID] = None):
        if not isbn:
            return
        existing = await books.get_by_isbn_async(isbn)
        if existing is not None and existing.id != owner:
            raise BusinessException(f"ISBN {isbn} already registered", code=409)

    async def add_book(self, data: BookCreate) -> Book:
        """Validate and add a new book, then commit."""
        async with self._use_case("Add book") as uow:
            books = uow.get_repository(BookRepository)
            await self._ensure_isbn_free(books, data.isbn)
            book = await books.add_async(Book(**data.model_dump()))
            await uow.commit_async()
        logger.info(f"Book {book.id} '{book.title}' added")
        return book

    async def add_books(self, items: List[BookCreate]) -> List[Book]:
        """Add several books; either all of them are stored or none."""
        if not items:
            raise BusinessException("No books given", code=400)
        isbns = [item.isbn for item in items if item.isbn]
        if len(isbns) != len(set(isbns)):
            raise BusinessException("Duplicate ISBN within the batch", code=409)

        async with self._use_case("Add books") as uow:
            books = uow.get_repository(BookRepository)
            for isbn in isbns:
                await self._ensure_isbn_free(books, isbn)
            created = await books.add_range_async([Book(**item.model_dump()) for item in items])
            await uow.commit_async()
        logger.info(f"{len(created)} books added")
        return created

    async def get_book(self, book_id: uuid.UUID) -> Book:
        async with self._use_case("Get book") as uow:
            return await self._require(uow.get_repository(BookRepository), book_id)

    async def list_books(
        self,
        genre: Optional[str] = None,
        min_pages: Optional[int] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Book]:
        """List books, optionally filtered by genre and minimum page count."""
        async with self._use_case("List books") as uow:
            books = uow.get_repository(BookRepository)
            if genre is not None:
                return await books.list_by_genre_async(genre, min_pages=min_pages, limit=limit, offset=offset)
            predicate = Book.pages >= min_pages if min_pages is not None else None
            return await books.get_all_async(predicate, limit=limit, offset=offset)

    async def update_book(self, book_id: uuid.UUID, data: BookUpdate) -> Book:
        """Apply a partial update to an existing book."""
        changes = data.model_dump(exclude_unset=True)
        async with self._use_case("Update book") as uow:
            books = uow.get_repository(BookRepository)
            book = await self._require(books, book_id)
            if "isbn" in changes:
                await self._ensure_isbn_free(books, changes["isbn"], owner=book_id)
            for field, value in changes.items():
                setattr(book, field, value)
            await books.update_async(book)
            await uow.commit_async()
        logger.info(f"Book {book_id} updated: {sorted(changes)}")
        return book

    async def replace_book(self, book_id: uuid.UUID, data: BookCreate) -> Book:
        """Overwrite every field of an existing book."""
        async with self._use_case("Replace book") as uow:
            books = uow.get_repository(BookRepository)
            await self._require(books, book_id)
            await self._ensure_isbn_free(books, data.isbn, owner=book_id)
            book = await books.update_async(Book(id=book_id, **data.model_dump()))
            await uow.commit_async()
            stored = await books.get_by_id_async(book_id)
        logger.info(f"Book {book_id} replaced")
        return stored or book

    async def remove_book(self, book_id: uuid.UUID) -> None:
        async with self._use_case("Remove book") as uow:
            books = uow.get_repository(BookRepository)
            book = await self._require(books, book_id)
            await books.remove_async(book)
            await uow.commit_async()
        logger.info(f"Book {book_id} removed")
