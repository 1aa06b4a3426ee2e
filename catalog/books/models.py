from typing import Optional
from sqlmodel import Field
from datakit.repository.entity import Entity


class Book(Entity, table=True):
    __tablename__ = "books"
    title: str = Field(index=True, max_length=255)
    pages: int
    genre: str = Field(index=True, max_length=64)
    isbn: Optional[str] = Field(default=None, unique=True, max_length=32)
