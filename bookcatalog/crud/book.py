from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from bookcatalog.core.errors import ConflictError, NotFoundError
from bookcatalog.models.book import Book, utcnow
from bookcatalog.schemas.book import BookPayload, BookRecord, CatalogStats, GenreCount

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
# OFFSET is bound as a signed 64-bit integer
MAX_OFFSET = 2**63 - 1
MAX_PAGE = MAX_OFFSET // MAX_PAGE_LIMIT + 1
DEFAULT_SORT_FIELD = "createdAt"
TITLE_SEARCH_LIMIT = 50
FILTER_LIMIT = 100
LONG_BOOK_MIN_PAGES = 300
SHORT_BOOK_MAX_PAGES = 150

DUPLICATE_MESSAGE = "A book with this title and author already exists"
NOT_FOUND_MESSAGE = "Book not found"

SORTABLE_COLUMNS = {
    "id": Book.id,
    "title": Book.title,
    "author": Book.author,
    "genre": Book.genre,
    "pages": Book.pages,
    "createdAt": Book.created_at,
    "updatedAt": Book.updated_at,
}


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    digits = text[1:] if text.startswith("-") else text
    if not digits.isdigit() or not digits.isascii():
        return None
    try:
        return int(text)
    except ValueError:
        # longer than the interpreter's int string limit
        return None


@dataclass(frozen=True)
class PageRequest:
    """A normalised listing request: 1-indexed page, bounded limit, known sort column."""

    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_by: str = DEFAULT_SORT_FIELD
    descending: bool = True

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_query(
        cls,
        page: Any = None,
        limit: Any = None,
        sort_by: Any = None,
        order: Any = None,
    ) -> "PageRequest":
        """Build a request from raw query-string values, falling back to defaults."""
        parsed_page = _parse_int(page)
        parsed_limit = _parse_int(limit)

        if parsed_limit is None:
            parsed_limit = DEFAULT_PAGE_LIMIT
        parsed_limit = min(max(parsed_limit, 1), MAX_PAGE_LIMIT)

        sort_field = sort_by if sort_by in SORTABLE_COLUMNS else DEFAULT_SORT_FIELD
        ascending = isinstance(order, str) and order.strip().upper() == "ASC"

        return cls(
            page=min(max(parsed_page or 1, 1), MAX_PAGE),
            limit=parsed_limit,
            sort_by=sort_field,
            descending=not ascending,
        )


def _to_record(book: Book) -> BookRecord:
    return BookRecord.model_validate(book)


class BookRepository:
    """All reads and writes of the ``books`` table go through here."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _all(self, stmt) -> list[BookRecord]:
        return [_to_record(book) for book in self.session.scalars(stmt).all()]

    def _substring(self, column: ColumnElement, term: str, limit: int) -> list[BookRecord]:
        stmt = (
            select(Book)
            .where(column.icontains(term, autoescape=True))
            .order_by(Book.title.asc(), Book.id.asc())
            .limit(limit)
        )
        return self._all(stmt)

    def find_page(self, request: PageRequest) -> tuple[list[BookRecord], int]:
        total = self.session.scalar(select(func.count()).select_from(Book)) or 0

        direction = desc if request.descending else asc
        stmt = (
            select(Book)
            .order_by(direction(SORTABLE_COLUMNS[request.sort_by]), direction(Book.id))
            .offset(request.offset)
            .limit(request.limit)
        )
        return self._all(stmt), total

    def find_by_id(self, book_id: int) -> Optional[BookRecord]:
        book = self.session.get(Book, book_id)
        return _to_record(book) if book is not None else None

    def find_by_title_substring(self, term: str) -> list[BookRecord]:
        return self._substring(Book.title, term, TITLE_SEARCH_LIMIT)

    def find_by_genre_substring(self, term: str) -> list[BookRecord]:
        return self._substring(Book.genre, term, FILTER_LIMIT)

    def find_by_author_substring(self, term: str) -> list[BookRecord]:
        return self._substring(Book.author, term, FILTER_LIMIT)

    def find_long(self) -> list[BookRecord]:
        stmt = (
            select(Book)
            .where(Book.pages > LONG_BOOK_MIN_PAGES)
            .order_by(Book.pages.desc(), Book.id.asc())
            .limit(FILTER_LIMIT)
        )
        return self._all(stmt)

    def find_short(self) -> list[BookRecord]:
        stmt = (
            select(Book)
            .where(Book.pages <= SHORT_BOOK_MAX_PAGES)
            .order_by(Book.pages.asc(), Book.id.asc())
            .limit(FILTER_LIMIT)
        )
        return self._all(stmt)

    def find_duplicate(self, title: str, author: str, exclude_id: Optional[int] = None) -> Optional[BookRecord]:
        stmt = select(Book).where(Book.title == title.strip(), Book.author == author.strip())
        if exclude_id is not None:
            stmt = stmt.where(Book.id != exclude_id)
        book = self.session.scalars(stmt.limit(1)).first()
        return _to_record(book) if book is not None else None

    def _ensure_unique(self, payload: BookPayload, exclude_id: Optional[int] = None) -> None:
        existing = self.find_duplicate(payload.title, payload.author, exclude_id=exclude_id)
        if existing is not None:
            raise ConflictError(DUPLICATE_MESSAGE, existing.identity())

    def _commit(self, payload: BookPayload, exclude_id: Optional[int] = None) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            # A concurrent writer can slip past the duplicate check; the unique
            # constraint catches it here.
            self.session.rollback()
            existing = self.find_duplicate(payload.title, payload.author, exclude_id=exclude_id)
            if existing is None:
                raise
            raise ConflictError(DUPLICATE_MESSAGE, existing.identity()) from exc

    def create(self, payload: BookPayload) -> BookRecord:
        self._ensure_unique(payload)

        book = Book(
            title=payload.title,
            author=payload.author,
            genre=payload.genre.value,
            pages=payload.pages,
        )
        self.session.add(book)
        self._commit(payload)
        self.session.refresh(book)
        return _to_record(book)

    def update(self, book_id: int, payload: BookPayload) -> BookRecord:
        book = self.session.get(Book, book_id)
        if book is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        self._ensure_unique(payload, exclude_id=book_id)

        book.title = payload.title
        book.author = payload.author
        book.genre = payload.genre.value
        book.pages = payload.pages
        book.updated_at = utcnow()

        self._commit(payload, exclude_id=book_id)
        self.session.refresh(book)
        return _to_record(book)

    def delete(self, book_id: int) -> BookRecord:
        book = self.session.get(Book, book_id)
        if book is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)

        removed = _to_record(book)
        self.session.delete(book)
        self.session.commit()
        return removed

    def stats(self) -> CatalogStats:
        total_books, total_pages, average_pages = self.session.execute(
            select(
                func.count(Book.id),
                func.coalesce(func.sum(Book.pages), 0),
                func.avg(Book.pages),
            )
        ).one()

        book_count = func.count(Book.id)
        distribution = self.session.execute(
            select(Book.genre, book_count)
            .group_by(Book.genre)
            .order_by(book_count.desc(), Book.genre.asc())
        ).all()

        return CatalogStats(
            total_books=total_books,
            total_pages=int(total_pages),
            # round half up
            average_pages=math.floor(float(average_pages) + 0.5) if average_pages is not None else 0,
            genre_distribution=[GenreCount(genre=genre, count=count) for genre, count in distribution],
        )
