"""RFC 7807 problem responses.

Every error leaving the API is ``application/problem+json`` so dashboard
clients can tell a failed data refresh from a bad query. The ``type`` URI
is derived from the error code: ``DATA_FETCH_ERROR`` -> ``/errors/data-fetch-error``.
"""

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.logging import request_id_ctx

ERROR_TYPE_BASE = "/errors"


def error_type_uri(code: str) -> str:
    """Map ``SOME_CODE`` to ``/errors/some-code``."""
    return f"{ERROR_TYPE_BASE}/{code.lower().replace('_', '-')}"


class ProblemDetail(BaseModel):
    """Problem body with the ``code``/``request_id``/``errors`` extensions."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="about:blank", description="Problem type URI.")
    title: str = Field(..., description="Short summary of the problem type.")
    status: int = Field(..., ge=400, le=599, description="HTTP status code.")
    detail: str | None = Field(None, description="What went wrong this time.")
    instance: str | None = Field(None, description="URI of this occurrence.")
    code: str | None = Field(None, description="Machine-readable error code.")
    request_id: str | None = Field(None, description="Correlation ID for support.")
    errors: list[dict[str, Any]] | None = Field(
        None,
        description="Per-field validation errors, only on 422.",
    )


class ProblemDetailResponse(JSONResponse):
    media_type = "application/problem+json"


def problem_response(
    status: int,
    code: str,
    title: str,
    detail: str | None = None,
    errors: list[dict[str, Any]] | None = None,
) -> ProblemDetailResponse:
    """Build a problem+json response tagged with the current request ID."""
    request_id = request_id_ctx.get()
    problem = ProblemDetail(
        type=error_type_uri(code),
        title=title,
        status=status,
        detail=detail,
        instance=f"/requests/{request_id}" if request_id else None,
        code=code,
        request_id=request_id,
        errors=errors,
    )
    return ProblemDetailResponse(status_code=status, content=problem.model_dump(exclude_none=True))
