"""Field-level checks run on create and update, before anything touches the store."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from bookcatalog.core.errors import InputError
from bookcatalog.schemas.book import BookPayload


def _as_mapping(data: Any) -> dict[str, Any]:
    # Anything that is not a JSON object is checked as an empty one.
    if isinstance(data, Mapping):
        return dict(data)
    return {}


def collect_violations(data: Any) -> list[str]:
    """Return every violation message for ``data``, or an empty list if it is valid."""
    try:
        BookPayload.model_validate(_as_mapping(data))
    except ValidationError as exc:
        return [error["msg"] for error in exc.errors()]
    return []


def validate_book_payload(data: Any) -> BookPayload:
    """Normalise ``data`` into a ``BookPayload`` or raise ``InputError`` listing all violations."""
    try:
        return BookPayload.model_validate(_as_mapping(data))
    except ValidationError as exc:
        raise InputError(
            "Validation failed",
            details=[error["msg"] for error in exc.errors()],
        ) from exc
