import uuid
from functools import partial
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from datakit.database.manager import DatabaseManager
from datakit.repository.unit_of_work import UnitOfWork
from datakit.response import ResponseModel
from ..models import Book
from ..schemas import BookCreate, BookRead, BookUpdate
from ..service import BookService, UnitOfWorkFactory

router = APIRouter()


def get_session_factory():
    """Dependency: session factory of the application database."""
    return DatabaseManager.get_instance().sql.session_factory


def get_uow_factory(session_factory=Depends(get_session_factory)) -> UnitOfWorkFactory:
    """Dependency: builds one UnitOfWork (and one session) per call."""
    return partial(UnitOfWork.from_session_factory, session_factory)


def get_book_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> BookService:
    """Dependency: create BookService."""
    return BookService(uow_factory)


def _dump(book: Book) -> dict:
    return BookRead.model_validate(book).model_dump(mode="json")


@router.post("")
async def create_book(
    data: BookCreate,
    service: BookService = Depends(get_book_service)
):
    """Add a book."""
    book = await service.add_book(data)
    return ResponseModel.success(data=_dump(book))


@router.post("/bulk")
async def create_books(
    data: List[BookCreate],
    service: BookService = Depends(get_book_service)
):
    """Add several books in one transaction."""
    books = await service.add_books(data)
    return ResponseModel.success(data=[_dump(book) for book in books])


@router.get("")
async def list_books(
    genre: Optional[str] = Query(default=None, min_length=1),
    min_pages: Optional[int] = Query(default=None, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: BookService = Depends(get_book_service)
):
    """List books, optionally filtered by genre and minimum pages."""
    books = await service.list_books(genre=genre, min_pages=min_pages, limit=limit, offset=offset)
    return ResponseModel.success(data=[_dump(book) for book in books])


@router.get("/{book_id}")
async def get_book(
    book_id: uuid.UUID,
    service: BookService = Depends(get_book_service)
):
    book = await service.get_book(book_id)
    return ResponseModel.success(data=_dump(book))


@router.put("/{book_id}")
async def replace_book(
    book_id: uuid.UUID,
    data: BookCreate,
    service: BookService = Depends(get_book_service)
):
    """Overwrite every field of a book."""
    book = await service.replace_book(book_id, data)
    return ResponseModel.success(data=_dump(book))


@router.patch("/{book_id}")
async def update_book(
    book_id: uuid.UUID,
    data: BookUpdate,
    service: BookService = Depends(get_book_service)
):
    """Change only the fields that are sent."""
    book = await service.update_book(book_id, data)
    return ResponseModel.success(data=_dump(book))


@router.delete("/{book_id}")
async def delete_book(
    book_id: uuid.UUID,
    service: BookService = Depends(get_book_service)
):
    await service.remove_book(book_id)
    return ResponseModel.success(data={"id": str(book_id)})
