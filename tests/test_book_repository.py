from __future__ import annotations

import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from bookcatalog.core.errors import ConflictError, NotFoundError
from bookcatalog.crud.book import MAX_OFFSET, MAX_PAGE, BookRepository, PageRequest
from bookcatalog.schemas.book import BookPayload
from bookcatalog.validation import validate_book_payload


def _payload(title: str, author: str = "Anon", genre: str = "Fiction", pages: int = 200) -> BookPayload:
    return validate_book_payload({"title": title, "author": author, "genre": genre, "pages": pages})


@pytest.fixture()
def repo(db_session: Session) -> BookRepository:
    return BookRepository(db_session)


def test_create_assigns_id_and_timestamps(repo: BookRepository):
    book = repo.create(_payload("Dune", "Frank Herbert", "Science Fiction", 412))

    assert book.id >= 1
    assert (book.title, book.author, book.genre, book.pages) == ("Dune", "Frank Herbert", "Science Fiction", 412)
    assert book.created_at is not None
    assert book.updated_at >= book.created_at
    assert repo.find_by_id(book.id) == book


def test_records_are_immutable(repo: BookRepository):
    book = repo.create(_payload("Dune"))
    with pytest.raises(ValidationError):
        book.title = "Other"


def test_find_by_id_missing_returns_none(repo: BookRepository):
    assert repo.find_by_id(12345) is None


def test_create_rejects_duplicate_title_and_author(repo: BookRepository):
    original = repo.create(_payload("Dune", "Frank Herbert"))

    with pytest.raises(ConflictError) as excinfo:
        repo.create(_payload("  Dune ", "Frank Herbert  "))

    assert excinfo.value.existing == {"id": original.id, "title": "Dune", "author": "Frank Herbert"}


def test_duplicate_check_is_case_sensitive(repo: BookRepository):
    repo.create(_payload("Dune", "Frank Herbert"))
    other = repo.create(_payload("dune", "Frank Herbert"))
    assert other.title == "dune"


def test_unique_constraint_backs_up_duplicate_check(repo: BookRepository, monkeypatch):
    original = repo.create(_payload("Dune", "Frank Herbert"))
    # Simulate a concurrent writer that passed the check first.
    monkeypatch.setattr(repo, "_ensure_unique", lambda payload, exclude_id=None: None)

    with pytest.raises(ConflictError) as excinfo:
        repo.create(_payload("Dune", "Frank Herbert"))

    assert excinfo.value.existing["id"] == original.id
    assert repo.find_page(PageRequest())[1] == 1


def test_find_duplicate_matches_trimmed_values(repo: BookRepository):
    book = repo.create(_payload("Emma", "Jane Austen"))

    assert repo.find_duplicate(" Emma ", "Jane Austen ") == book
    assert repo.find_duplicate("Emma", "Jane Austen", exclude_id=book.id) is None
    assert repo.find_duplicate("Emma", "Someone Else") is None


def test_page_request_defaults():
    request = PageRequest.from_query()

    assert (request.page, request.limit, request.offset) == (1, 50, 0)
    assert request.sort_by == "createdAt"
    assert request.descending is True


@pytest.mark.parametrize(
    "page, limit, expected",
    [
        ("2", "5", (2, 5, 5)),
        ("3", "500", (3, 100, 200)),
        ("1", "abc", (1, 50, 0)),
        ("abc", None, (1, 50, 0)),
        ("-4", "0", (1, 1, 0)),
        (4, 10, (4, 10, 30)),
    ],
)
def test_page_request_from_query(page, limit, expected):
    request = PageRequest.from_query(page=page, limit=limit)
    assert (request.page, request.limit, request.offset) == expected


def test_page_request_caps_page_so_offset_fits_64_bits():
    request = PageRequest.from_query(page="99999999999999999999", limit="100")

    assert request.page == MAX_PAGE
    assert request.offset <= MAX_OFFSET


@pytest.mark.parametrize("raw", ["1_0", "\u0663", "+5", "2.0", " "])
def test_page_request_accepts_only_ascii_digits(raw):
    request = PageRequest.from_query(page=raw, limit=raw)
    assert (request.page, request.limit) == (1, 50)


def test_page_request_sort_options():
    assert PageRequest.from_query(sort_by="pages", order="asc").descending is False
    assert PageRequest.from_query(sort_by="pages", order="ASC").sort_by == "pages"
    assert PageRequest.from_query(sort_by="password; DROP TABLE books").sort_by == "createdAt"
    assert PageRequest.from_query(order="sideways").descending is True


def test_find_page_newest_first_with_total(repo: BookRepository):
    created = [repo.create(_payload(f"Book {index}")) for index in range(7)]

    books, total = repo.find_page(PageRequest.from_query(page=2, limit=5))

    assert total == 7
    assert [book.id for book in books] == [created[1].id, created[0].id]


def test_find_page_sorted_by_pages_ascending(repo: BookRepository):
    for title, pages in [("Long", 900), ("Short", 90), ("Medium", 300)]:
        repo.create(_payload(title, pages=pages))

    books, _ = repo.find_page(PageRequest.from_query(sort_by="pages", order="ASC"))

    assert [book.title for book in books] == ["Short", "Medium", "Long"]


def test_find_page_beyond_last_page_is_empty(repo: BookRepository):
    repo.create(_payload("Only"))
    books, total = repo.find_page(PageRequest.from_query(page=5, limit=10))
    assert books == []
    assert total == 1


def test_title_substring_is_case_insensitive_and_sorted(repo: BookRepository):
    for title in ["The Hobbit", "Hobbit Tales", "Dune", "A hobbit's guide"]:
        repo.create(_payload(title))

    titles = [book.title for book in repo.find_by_title_substring("HOBBIT")]

    assert titles == ["A hobbit's guide", "Hobbit Tales", "The Hobbit"]


def test_title_substring_is_capped_at_fifty(repo: BookRepository):
    for index in range(55):
        repo.create(_payload(f"Series volume {index:02d}"))

    books = repo.find_by_title_substring("volume")

    assert len(books) == 50
    assert books[0].title == "Series volume 00"


def test_substring_wildcards_are_literal(repo: BookRepository):
    repo.create(_payload("100% Pure"))
    repo.create(_payload("Plain"))

    assert [book.title for book in repo.find_by_title_substring("%")] == ["100% Pure"]
    assert repo.find_by_author_substring("_") == []


def test_genre_and_author_substring(repo: BookRepository):
    repo.create(_payload("Dune", "Frank Herbert", "Science Fiction"))
    repo.create(_payload("Emma", "Jane Austen", "Fiction"))
    repo.create(_payload("SPQR", "Mary Beard", "History"))

    assert [book.title for book in repo.find_by_genre_substring("fiction")] == ["Dune", "Emma"]
    assert [book.title for book in repo.find_by_author_substring("herb")] == ["Dune"]


def test_long_and_short_boundaries(repo: BookRepository):
    for title, pages in [("A", 150), ("B", 151), ("C", 300), ("D", 301), ("E", 1200), ("F", 20)]:
        repo.create(_payload(title, pages=pages))

    assert [book.pages for book in repo.find_long()] == [1200, 301]
    assert [book.pages for book in repo.find_short()] == [20, 150]


def test_update_replaces_fields_and_refreshes_updated_at(repo: BookRepository):
    book = repo.create(_payload("Draft", "Writer", "Other", 10))

    updated = repo.update(book.id, _payload("Final", "Writer", "Mystery", 320))

    assert updated.id == book.id
    assert (updated.title, updated.genre, updated.pages) == ("Final", "Mystery", 320)
    assert updated.created_at == book.created_at
    assert updated.updated_at > book.updated_at


def test_update_with_unchanged_fields_still_refreshes_updated_at(repo: BookRepository):
    book = repo.create(_payload("Same"))
    updated = repo.update(book.id, _payload("Same"))
    assert updated.updated_at > book.updated_at


def test_update_missing_book(repo: BookRepository):
    with pytest.raises(NotFoundError):
        repo.update(999, _payload("Ghost"))


def test_update_cannot_take_another_books_identity(repo: BookRepository):
    first = repo.create(_payload("Emma", "Jane Austen"))
    second = repo.create(_payload("Persuasion", "Jane Austen"))

    with pytest.raises(ConflictError) as excinfo:
        repo.update(second.id, _payload("Emma", "Jane Austen"))

    assert excinfo.value.existing["id"] == first.id


def test_delete_returns_removed_record(repo: BookRepository):
    book = repo.create(_payload("Gone Soon"))

    removed = repo.delete(book.id)

    assert removed.identity() == {"id": book.id, "title": "Gone Soon", "author": "Anon"}
    assert repo.find_by_id(book.id) is None
    with pytest.raises(NotFoundError):
        repo.delete(book.id)


def test_stats_on_empty_catalog(repo: BookRepository):
    stats = repo.stats()

    assert (stats.total_books, stats.total_pages, stats.average_pages) == (0, 0, 0)
    assert stats.genre_distribution == []


def test_stats_totals_and_distribution(repo: BookRepository):
    repo.create(_payload("One", genre="Fantasy", pages=200))
    repo.create(_payload("Two", genre="History", pages=300))
    repo.create(_payload("Three", genre="History", pages=101))

    stats = repo.stats()

    assert stats.total_books == 3
    assert stats.total_pages == 601
    assert stats.average_pages == 200
    assert [(entry.genre, entry.count) for entry in stats.genre_distribution] == [("History", 2), ("Fantasy", 1)]


def test_stats_average_rounds_half_up(repo: BookRepository):
    repo.create(_payload("One", pages=1))
    repo.create(_payload("Two", pages=2))
    assert repo.stats().average_pages == 2
