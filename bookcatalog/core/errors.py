from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookcatalog.core.settings import AppSettings


class CatalogError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, Any]:
        return {"error": self.message}


class InputError(CatalogError):
    """Malformed id, missing search term, or failed field validation."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        if self.details is not None:
            body["details"] = list(self.details)
        return body


class NotFoundError(CatalogError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(CatalogError):
    """A book with the same title and author is already stored."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, existing: Mapping[str, Any]) -> None:
        super().__init__(message)
        self.existing = dict(existing)

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["existingBook"] = self.existing
        return body


class StoreError(CatalogError):
    """Connectivity or query failure in the relational store."""


def server_error_response(settings: AppSettings, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Something went wrong!",
            "message": detail if settings.is_development else "Internal server error",
        },
    )


def register_exception_handlers(app: FastAPI, settings: AppSettings) -> None:
    """Install the JSON error mapping used by every route."""

    @app.exception_handler(StoreError)
    async def _handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store error on {} {}: {}", request.method, request.url.path, exc.message)
        return server_error_response(settings, exc.message)

    @app.exception_handler(CatalogError)
    async def _handle_catalog_error(request: Request, exc: CatalogError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(SQLAlchemyError)
    async def _handle_sqlalchemy_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.opt(exception=exc).error("Database failure on {} {}", request.method, request.url.path)
        return server_error_response(settings, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            content: dict[str, Any] = {"error": "Route not found"}
        else:
            content = {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [str(error.get("msg", "Invalid value")) for error in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "details": details},
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
        return server_error_response(settings, str(exc))
