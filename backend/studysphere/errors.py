# backend/studysphere/errors.py
"""
Error types and the JSON renderers registered on the app.

Every error body has the shape {"message": ..., "code": ..., **context}.
"""

import logging
from contextlib import contextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StorageCorruption(Exception):
    """A collection file on disk does not hold a JSON array."""

    def __init__(self, path: str, reason: str = "malformed JSON"):
        super().__init__(f"{path}: {reason}")
        self.path = path


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, code: str, **context):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.context = context

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code, **self.context}


def auth_required() -> ApiError:
    return ApiError(401, "Authentication required", "AUTH_REQUIRED")


def not_found(what: str) -> ApiError:
    return ApiError(404, f"{what.capitalize()} not found", f"{what.upper()}_NOT_FOUND")


@contextmanager
def storage_errors(message: str):
    """Turn storage failures inside a handler into a generic 500."""
    try:
        yield
    except (StorageCorruption, OSError):
        logger.exception(message)
        raise ApiError(500, message, "INTERNAL_ERROR")


def _field_name(loc) -> str:
    # drop the "body"/"form"/"query" prefix FastAPI puts in front
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "form", "query", "path"):
        parts = parts[1:]
    return ".".join(parts)


async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    try:
        code = HTTPStatus(exc.status_code).name
    except ValueError:
        code = "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail), "code": code},
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": _field_name(err.get("loc", ())), "message": err.get("msg", "")} for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid input data", "code": "VALIDATION_ERROR", "errors": errors},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error", "code": "INTERNAL_ERROR"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
