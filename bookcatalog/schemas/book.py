from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from bookcatalog.models.book import (
    AUTHOR_MAX_LENGTH,
    MAX_PAGES,
    MIN_PAGES,
    TITLE_MAX_LENGTH,
    Genre,
)

_TEXT_LIMITS = {"title": TITLE_MAX_LENGTH, "author": AUTHOR_MAX_LENGTH}


def _as_number(value: Any) -> Union[int, float, None]:
    # ints stay ints so arbitrarily large values compare without float overflow
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


class BookPayload(BaseModel):
    """Normalised title/author/genre/pages accepted on create and update.

    Fields default to ``None`` and are validated anyway, so a missing field
    reports the same message as a blank one. Every failing field contributes
    exactly one error, in declaration order.
    """

    title: str = Field(default=None, validate_default=True)
    author: str = Field(default=None, validate_default=True)
    genre: Genre = Field(default=None, validate_default=True)
    pages: int = Field(default=None, validate_default=True)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("title", "author", mode="before")
    @classmethod
    def _check_text(cls, value: Any, info: ValidationInfo) -> str:
        label = info.field_name.capitalize()
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError("required", "{label} is required", {"label": label})
        value = value.strip()
        limit = _TEXT_LIMITS[info.field_name]
        if len(value) > limit:
            raise PydanticCustomError(
                "too_long",
                "{label} must be between 1 and {limit} characters",
                {"label": label, "limit": limit},
            )
        return value

    @field_validator("genre", mode="before")
    @classmethod
    def _check_genre(cls, value: Any) -> Genre:
        if not isinstance(value, str) or not value.strip():
            raise PydanticCustomError("required", "Genre is required")
        try:
            return Genre(value.strip())
        except ValueError:
            raise PydanticCustomError(
                "genre_choice",
                "Genre must be one of: {choices}",
                {"choices": ", ".join(genre.value for genre in Genre)},
            ) from None

    @field_validator("pages", mode="before")
    @classmethod
    def _check_pages(cls, value: Any) -> int:
        number = _as_number(value)
        if number is None or number < MIN_PAGES:
            raise PydanticCustomError("pages_positive", "Pages must be a positive number")
        if isinstance(number, float) and not number.is_integer():
            raise PydanticCustomError("pages_whole", "Pages must be a whole number")
        if number > MAX_PAGES:
            raise PydanticCustomError("pages_max", "Pages cannot exceed 10,000")
        return int(number)


class BookRecord(BaseModel):
    """Immutable snapshot of a stored book, as returned by the repository."""

    id: int
    title: str
    author: str
    genre: str
    pages: int
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True, frozen=True)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands timestamps back without tzinfo
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def identity(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "author": self.author}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BookListOut(BaseModel):
    books: list[BookRecord]
    pagination: Pagination


class TitleSearchOut(BaseModel):
    books: list[BookRecord]
    search_term: str = Field(alias="searchTerm")
    count: int

    model_config = ConfigDict(populate_by_name=True)


class GenreSearchOut(BaseModel):
    books: list[BookRecord]
    genre: str
    count: int


class AuthorSearchOut(BaseModel):
    books: list[BookRecord]
    author: str
    count: int


class LengthFilterOut(BaseModel):
    books: list[BookRecord]
    filter: str
    count: int
    criteria: str


class BookMutationOut(BaseModel):
    message: str
    book: BookRecord


class DeletedBook(BaseModel):
    id: int
    title: str
    author: str


class BookDeletionOut(BaseModel):
    message: str
    deleted_book: DeletedBook = Field(alias="deletedBook")

    model_config = ConfigDict(populate_by_name=True)


class GenreCount(BaseModel):
    genre: str
    count: int


class CatalogStats(BaseModel):
    total_books: int = Field(alias="totalBooks")
    total_pages: int = Field(alias="totalPages")
    average_pages: int = Field(alias="averagePages")
    genre_distribution: list[GenreCount] = Field(alias="genreDistribution")

    model_config = ConfigDict(populate_by_name=True)
