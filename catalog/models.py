"""
Model registration: import every table model here so SQLModel.metadata knows
about it before tables are created at startup.
"""
from catalog.books.models import Book

__all__ = ["Book"]
