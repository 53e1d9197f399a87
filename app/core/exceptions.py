"""Dashboard error hierarchy and the FastAPI handlers that render it.

Every subclass pins its HTTP status and machine-readable code as class
attributes, so raising sites only pass a message and optional context.
"""

from typing import Any, ClassVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.core.logging import get_logger
from app.core.problem_details import ProblemDetailResponse, problem_response

logger = get_logger(__name__)


class DashboardError(Exception):
    """Base exception for dashboard errors."""

    code: ClassVar[str] = "INTERNAL_ERROR"
    status_code: ClassVar[int] = 500
    default_message: ClassVar[str] = "Internal dashboard error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def title(self) -> str:
        """Problem title derived from the code, e.g. ``Data Fetch Error``."""
        return self.code.replace("_", " ").title()


class NotFoundError(DashboardError):
    """Unknown store id."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class DataFetchError(DashboardError):
    """The record source failed (transport, HTTP status or auth error).

    The refresh cycle that hit it is aborted and the previous snapshot is
    kept. Nothing retries internally.
    """

    code = "DATA_FETCH_ERROR"
    status_code = 502
    default_message = "Failed to fetch data from record source"


class MalformedRecordError(DashboardError):
    """A source row has a non-numeric required field.

    Only raised when strict validation is enabled; the lenient default
    coerces such fields to zero.
    """

    code = "MALFORMED_RECORD"
    status_code = 422
    default_message = "Malformed record"


class ServiceUnavailableError(DashboardError):
    """No dashboard snapshot is available to answer from."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    default_message = "Service unavailable"


# =============================================================================
# Handlers
# =============================================================================


async def dashboard_exception_handler(
    request: Request,
    exc: DashboardError,
) -> ProblemDetailResponse:
    """Render a DashboardError as problem+json."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "app.error_handled",
        error=exc.message,
        error_code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
        details=exc.details,
    )
    return problem_response(exc.status_code, exc.code, exc.title, exc.message)


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    # Drop the "query"/"path"/"body" prefix so clients see bare parameter names.
    return [
        {
            "field": ".".join(
                str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")
            ),
            "message": str(error.get("msg", "Validation failed")),
            "type": str(error.get("type", "unknown")),
        }
        for error in exc.errors()
    ]


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    """Render request validation failures with one entry per bad field.

    Args:
        request: FastAPI request object.
        exc: Validation error raised while parsing query or path params.

    Returns:
        422 problem response whose ``errors`` list names each field.
    """
    errors = _field_errors(exc)
    logger.warning(
        "app.validation_error",
        path=request.url.path,
        fields=[e["field"] for e in errors],
    )
    return problem_response(
        422,
        "VALIDATION_ERROR",
        "Validation Error",
        f"{len(errors)} invalid request parameter(s)",
        errors=errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    """Last-resort handler; the traceback goes to the log, not the client."""
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )
    return problem_response(
        500,
        "INTERNAL_ERROR",
        "Internal Server Error",
        "Unexpected error; quote the request_id when reporting it.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the dashboard, validation and fallback handlers to ``app``."""
    app.add_exception_handler(DashboardError, dashboard_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
