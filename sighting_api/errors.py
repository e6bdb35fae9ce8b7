"""
API error taxonomy.

Every error renders as JSON ``{"message": str}`` plus an optional ``code``
sub-code that clients can branch on (e.g. REFRESH_TOKEN_EXPIRED).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base API error with status code and message"""

    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        rv = {"message": self.message}
        if self.code:
            rv["code"] = self.code
        return rv


class ValidationFailed(APIError):
    status_code = 400


class Unauthenticated(APIError):
    """No credential, or an invalid / expired one"""

    status_code = 401

    def __init__(self, message: str = "Authentication required", code: Optional[str] = "TOKEN_MISSING"):
        super().__init__(message, code)


class Forbidden(APIError):
    """Authenticated but not entitled (wrong owner, wrong role, wrong status)"""

    status_code = 403


class InvalidRefreshToken(APIError):
    status_code = 403

    def __init__(self, message: str = "Invalid refresh token", code: Optional[str] = "INVALID_REFRESH_TOKEN"):
        super().__init__(message, code)


class RefreshTokenExpired(InvalidRefreshToken):
    def __init__(self):
        super().__init__("Refresh token expired", "REFRESH_TOKEN_EXPIRED")


class NotFound(APIError):
    status_code = 404

    def __init__(self, message: str = "Resource not found", code: Optional[str] = None):
        super().__init__(message, code)


class Conflict(APIError):
    status_code = 409


class InvalidTransition(APIError):
    """Requested status change is not in the transition table"""

    status_code = 400

    def __init__(self, from_status: str, to_status: str, message: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot change post status from {from_status} to {to_status}",
            "INVALID_TRANSITION",
        )


class PostAlreadyDeleted(InvalidTransition):
    def __init__(self, from_status: str):
        super().__init__(from_status, from_status, "Post is already deleted")
        self.code = "ALREADY_DELETED"


class PersistenceError(APIError):
    status_code = 500


class UpstreamError(APIError):
    """An external service (Firebase, R2) failed"""

    status_code = 502


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code == 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"message": "Internal server error"})
    if exc.status_code > 500:
        logger.error(f"{request.method} {request.url.path} upstream failure: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"message": message}, headers=exc.headers)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request"))
    return JSONResponse(
        status_code=400,
        content={
            "message": message,
            "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
