"""Book repository implementation."""

from typing import List, Optional
from datakit.repository.base import DelegatingRepository
from .models import Book


class BookRepository(DelegatingRepository[Book]):
    """Book repository."""

    model = Book

    def get_by_title(self, title: str) -> Optional[Book]:
        return self.get(title=title)

    def get_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.get(isbn=isbn)

    def list_by_genre(self, genre: str) -> List[Book]:
        return self.get_all(genre=genre)

    async def get_by_title_async(self, title: str) -> Optional[Book]:
        """Find book by exact title."""
        return await self.get_async(title=title)

    async def get_by_isbn_async(self, isbn: str) -> Optional[Book]:
        """Find book by ISBN (unique)."""
        return await self.get_async(isbn=isbn)

    async def list_by_genre_async(
        self,
        genre: str,
        min_pages: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Book]:
        """List books of a genre, optionally only those with at least ``min_pages`` pages."""
        if min_pages is None:
            return await self.get_all_async(genre=genre, limit=limit, offset=offset)
        return await self.get_all_async(
            Book.pages >= min_pages, genre=genre, limit=limit, offset=offset
        )
