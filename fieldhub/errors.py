"""
Domain errors raised by the service layer.

Routes may raise HTTPException directly; services raise these so they stay
usable from scripts and tests. The app factory maps them to HTTP responses.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
import structlog


class FieldHubError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(FieldHubError):
    status_code = 400


class SpreadsheetError(ValidationFailed):
    pass


class Forbidden(FieldHubError):
    status_code = 403


class NotFound(FieldHubError):
    status_code = 404


class Conflict(FieldHubError):
    status_code = 409


async def fieldhub_error_handler(request: Request, exc: FieldHubError) -> JSONResponse:
    structlog.get_logger(__name__).info(
        "request_rejected",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
