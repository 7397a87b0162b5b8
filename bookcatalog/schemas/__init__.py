from .book import (
    AuthorSearchOut,
    BookDeletionOut,
    BookListOut,
    BookMutationOut,
    BookPayload,
    BookRecord,
    CatalogStats,
    DeletedBook,
    GenreCount,
    GenreSearchOut,
    LengthFilterOut,
    Pagination,
    TitleSearchOut,
)

__all__ = [
    "AuthorSearchOut",
    "BookDeletionOut",
    "BookListOut",
    "BookMutationOut",
    "BookPayload",
    "BookRecord",
    "CatalogStats",
    "DeletedBook",
    "GenreCount",
    "GenreSearchOut",
    "LengthFilterOut",
    "Pagination",
    "TitleSearchOut",
]
