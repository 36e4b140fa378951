"""
Error taxonomy and the central error normalizer.

Services raise ``ApiError`` subclasses; database, token and upload failures
are translated here into a stable ``{status, message}`` vocabulary so the
underlying engine's error codes never reach clients.  Everything else is
logged with its traceback and reduced to a generic 500.
"""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    NoResultFound,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from newsroom.config import settings
from newsroom.security import ExpiredToken, InvalidToken, TokenError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Expected, client-facing failure with an explicit HTTP status."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details=None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(self.message)


class BadRequestError(ApiError):
    status_code = 400
    default_message = "Bad request"


class UnauthorizedError(ApiError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(ApiError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(ApiError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(ApiError):
    status_code = 409
    default_message = "Conflict"


class UploadError(ApiError):
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(f"File upload error: {reason}")


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Validation failed"


class TooManyRequestsError(ApiError):
    status_code = 429
    default_message = "Too many requests, please try again later."

    def __init__(self, message: str | None = None, retry_after: int = 0):
        super().__init__(message, headers={"Retry-After": str(max(retry_after, 1))})


# ---------------------------------------------------------------------------
# Database error classification
# ---------------------------------------------------------------------------

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"
_NOT_NULL_SQLSTATE = "23502"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _classify_integrity_error(exc: IntegrityError) -> tuple[int, str]:
    code = _sqlstate(exc)
    text = str(exc.orig).lower()
    if code == _UNIQUE_SQLSTATE or "unique" in text or "duplicate" in text:
        return 409, "Duplicate entry: field already exists"
    if code == _FOREIGN_KEY_SQLSTATE or "foreign key" in text:
        return 400, "Invalid reference to related record"
    if code == _NOT_NULL_SQLSTATE or "not null" in text or "null value" in text:
        return 400, "Related record is required"
    return 400, "Database error occurred"


def normalize_error(exc: BaseException) -> tuple[int, str, bool]:
    """
    Map *exc* to ``(status_code, message, operational)``.

    ``operational`` is False only for errors nobody anticipated; those are
    the ones worth a full traceback in the server log.
    """
    if isinstance(exc, ApiError):
        return exc.status_code, exc.message, True
    if isinstance(exc, IntegrityError):
        status, message = _classify_integrity_error(exc)
        return status, message, True
    if isinstance(exc, DataError):
        return 400, "Invalid data provided", True
    if isinstance(exc, (NoResultFound, StaleDataError)):
        return 404, "Record not found", True
    if isinstance(exc, DBAPIError):
        return 400, "Database error occurred", True
    if isinstance(exc, StatementError):
        return 400, "Invalid data provided", True
    if isinstance(exc, SQLAlchemyError):
        return 400, "Database error occurred", True
    if isinstance(exc, ExpiredToken):
        return 401, "Token expired", True
    if isinstance(exc, InvalidToken):
        return 401, "Invalid token", True
    return 500, "Internal Server Error", False


def error_body(message: str, details=None, exc: BaseException | None = None) -> dict:
    body: dict = {"success": False, "error": message}
    if details:
        body["details"] = details
    if exc is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def format_validation_errors(errors) -> list[dict[str, str]]:
    """
    Flatten pydantic's structured error list into ``{field, message}`` pairs.

    The leading location segment (``body``/``query``/``path``) is dropped so
    clients see the field name they actually sent.
    """
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "params"):
            loc = loc[1:]
        formatted.append({"field": ".".join(loc) or "unknown", "message": err.get("msg", "Invalid value")})
    return formatted


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------

async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.details),
        headers=exc.headers,
    )


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", format_validation_errors(exc.errors())),
    )


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def _handle_normalized(request: Request, exc: Exception) -> JSONResponse:
    status, message, operational = normalize_error(exc)
    if operational:
        logger.warning("%s %s -> %d %s (%s)", request.method, request.url.path, status, message, exc)
    else:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=status, content=error_body(message, exc=exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    # Only the Exception entry runs outside the middleware stack.
    app.add_exception_handler(SQLAlchemyError, _handle_normalized)
    app.add_exception_handler(TokenError, _handle_normalized)
    app.add_exception_handler(Exception, _handle_normalized)
