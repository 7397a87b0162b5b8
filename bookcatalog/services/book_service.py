from __future__ import annotations

import math
from typing import Any

from fastapi import Depends
from loguru import logger
from sqlalchemy.orm import Session

from bookcatalog.core.errors import InputError, NotFoundError
from bookcatalog.crud.book import NOT_FOUND_MESSAGE, BookRepository, PageRequest
from bookcatalog.db.session import get_session
from bookcatalog.schemas.book import (
    AuthorSearchOut,
    BookDeletionOut,
    BookListOut,
    BookMutationOut,
    BookRecord,
    CatalogStats,
    DeletedBook,
    GenreSearchOut,
    LengthFilterOut,
    Pagination,
    TitleSearchOut,
)
from bookcatalog.validation import validate_book_payload

MIN_SEARCH_TERM_LENGTH = 2
MAX_BOOK_ID = 2**63 - 1


def parse_book_id(raw_id: str) -> int:
    """Accept only positive decimal integers that fit a 64-bit column."""
    value = raw_id.strip() if isinstance(raw_id, str) else ""
    if not value.isdigit() or not value.isascii():
        raise InputError("Invalid book ID")
    book_id = int(value)
    if book_id < 1 or book_id > MAX_BOOK_ID:
        raise InputError("Invalid book ID")
    return book_id


class BookService:
    """Composes the request validator and the repository for the catalog endpoints."""

    def __init__(self, repository: BookRepository):
        self.repository = repository

    def list_books(self, request: PageRequest) -> BookListOut:
        books, total = self.repository.find_page(request)
        return BookListOut(
            books=books,
            pagination=Pagination(
                page=request.page,
                limit=request.limit,
                total=total,
                pages=math.ceil(total / request.limit),
            ),
        )

    def search_by_title(self, term: str) -> TitleSearchOut:
        if len(term.strip()) < MIN_SEARCH_TERM_LENGTH:
            raise InputError("Search term must be at least 2 characters long")
        books = self.repository.find_by_title_substring(term.strip())
        return TitleSearchOut(books=books, search_term=term, count=len(books))

    def get_book(self, raw_id: str) -> BookRecord:
        book = self.repository.find_by_id(parse_book_id(raw_id))
        if book is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return book

    def search_by_genre(self, genre: str) -> GenreSearchOut:
        if not genre.strip():
            raise InputError("Genre parameter is required")
        books = self.repository.find_by_genre_substring(genre.strip())
        return GenreSearchOut(books=books, genre=genre, count=len(books))

    def search_by_author(self, author: str) -> AuthorSearchOut:
        if not author.strip():
            raise InputError("Author parameter is required")
        books = self.repository.find_by_author_substring(author.strip())
        return AuthorSearchOut(books=books, author=author, count=len(books))

    def long_books(self) -> LengthFilterOut:
        books = self.repository.find_long()
        return LengthFilterOut(books=books, filter="long", count=len(books), criteria="More than 300 pages")

    def short_books(self) -> LengthFilterOut:
        books = self.repository.find_short()
        return LengthFilterOut(books=books, filter="short", count=len(books), criteria="150 pages or less")

    def create_book(self, data: Any) -> BookMutationOut:
        payload = validate_book_payload(data)
        book = self.repository.create(payload)
        logger.info("Created book {} ({!r} by {!r})", book.id, book.title, book.author)
        return BookMutationOut(message="Book created successfully", book=book)

    def update_book(self, raw_id: str, data: Any) -> BookMutationOut:
        book_id = parse_book_id(raw_id)
        payload = validate_book_payload(data)
        book = self.repository.update(book_id, payload)
        logger.info("Updated book {}", book.id)
        return BookMutationOut(message="Book updated successfully", book=book)

    def delete_book(self, raw_id: str) -> BookDeletionOut:
        removed = self.repository.delete(parse_book_id(raw_id))
        logger.info("Deleted book {}", removed.id)
        return BookDeletionOut(
            message="Book deleted successfully",
            deleted_book=DeletedBook(**removed.identity()),
        )

    def stats(self) -> CatalogStats:
        return self.repository.stats()


def get_book_repository(session: Session = Depends(get_session)) -> BookRepository:
    return BookRepository(session)


def get_book_service(repository: BookRepository = Depends(get_book_repository)) -> BookService:
    return BookService(repository)
