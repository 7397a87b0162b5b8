from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from bookcatalog.crud.book import PageRequest
from bookcatalog.schemas.book import (
    AuthorSearchOut,
    BookDeletionOut,
    BookListOut,
    BookMutationOut,
    BookRecord,
    CatalogStats,
    GenreSearchOut,
    LengthFilterOut,
    TitleSearchOut,
)
from bookcatalog.services.book_service import BookService, get_book_service

router = APIRouter(prefix="/api", tags=["books"])


@router.get("/all", response_model=BookListOut)
def list_books(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    order: Optional[str] = Query(default=None),
    service: BookService = Depends(get_book_service),
) -> BookListOut:
    """Return one page of books, newest first unless told otherwise."""
    request = PageRequest.from_query(page=page, limit=limit, sort_by=sort_by, order=order)
    return service.list_books(request)


@router.get("/search/{title}", response_model=TitleSearchOut)
def search_by_title(title: str, service: BookService = Depends(get_book_service)) -> TitleSearchOut:
    return service.search_by_title(title)


@router.get("/book/{book_id}", response_model=BookRecord)
def get_book(book_id: str, service: BookService = Depends(get_book_service)) -> BookRecord:
    return service.get_book(book_id)


@router.get("/genre/{genre}", response_model=GenreSearchOut)
def search_by_genre(genre: str, service: BookService = Depends(get_book_service)) -> GenreSearchOut:
    return service.search_by_genre(genre)


@router.get("/author/{author}", response_model=AuthorSearchOut)
def search_by_author(author: str, service: BookService = Depends(get_book_service)) -> AuthorSearchOut:
    return service.search_by_author(author)


@router.get("/books/long", response_model=LengthFilterOut)
def long_books(service: BookService = Depends(get_book_service)) -> LengthFilterOut:
    """Books with more than 300 pages, longest first."""
    return service.long_books()


@router.get("/books/short", response_model=LengthFilterOut)
def short_books(service: BookService = Depends(get_book_service)) -> LengthFilterOut:
    """Books with 150 pages or less, shortest first."""
    return service.short_books()


@router.post("/books", status_code=status.HTTP_201_CREATED, response_model=BookMutationOut)
def create_book(
    data: Any = Body(default=None),
    service: BookService = Depends(get_book_service),
) -> BookMutationOut:
    """Validate and store a new book, rejecting duplicate title/author pairs."""
    return service.create_book(data)


@router.put("/books/{book_id}", response_model=BookMutationOut)
def update_book(
    book_id: str,
    data: Any = Body(default=None),
    service: BookService = Depends(get_book_service),
) -> BookMutationOut:
    """Replace title, author, genre and pages of an existing book."""
    return service.update_book(book_id, data)


@router.delete("/books/{book_id}", response_model=BookDeletionOut)
def delete_book(book_id: str, service: BookService = Depends(get_book_service)) -> BookDeletionOut:
    return service.delete_book(book_id)


@router.get("/stats", response_model=CatalogStats)
def catalog_stats(service: BookService = Depends(get_book_service)) -> CatalogStats:
    return service.stats()
