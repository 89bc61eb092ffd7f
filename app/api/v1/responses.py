"""
Shared JSON bodies for API responses.
Errors use the {error, details} shape the dashboard reads.
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...core.exceptions import SkillBadgeError

# Non-standard status used by nginx for requests the client abandoned
CLIENT_CLOSED_REQUEST = 499


def error_response(status_code: int, error: str, details: Optional[str] = None, **extra: Any) -> JSONResponse:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def exception_response(exc: SkillBadgeError, error: Optional[str] = None) -> JSONResponse:
    """
    Map a service exception to its HTTP status.

    Client errors carry only their message; server errors carry `error`
    (or the exception message) plus the underlying cause as `details`.
    """
    if exc.status_code < 500:
        return error_response(exc.status_code, exc.message)
    return error_response(exc.status_code, error or exc.message, exc.details)


def success_response(message: str, data: BaseModel) -> dict:
    return {
        "success": True,
        "message": message,
        "data": data.model_dump(mode="json", by_alias=True)
    }
