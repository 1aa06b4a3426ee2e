import uuid
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    pages: int = Field(gt=0)
    genre: str = Field(min_length=1, max_length=64)
    isbn: Optional[str] = Field(default=None, min_length=10, max_length=32)


class BookUpdate(BaseModel):
    """Partial update: only fields that are sent are changed. Only ``isbn`` may be cleared."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    pages: Optional[int] = Field(default=None, gt=0)
    genre: Optional[str] = Field(default=None, min_length=1, max_length=64)
    isbn: Optional[str] = Field(default=None, min_length=10, max_length=32)

    @field_validator("title", "pages", "genre")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class BookRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    pages: int
    genre: str
    isbn: Optional[str] = None
