# sweetspot/errors.py
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=409, detail=detail)


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


class ValidationFailed(HTTPException):
    def __init__(self, detail: str = "Validation failed", errors=None):
        super().__init__(status_code=400, detail=detail)
        self.errors = errors or []


def _field_errors(errors) -> list:
    out = []
    for e in errors:
        # drop the "body"/"query"/"path" prefix FastAPI puts in front of the field path
        loc = [str(p) for p in e.get("loc", ()) if p not in ("body", "query", "path", "form")]
        out.append({"field": ".".join(loc), "message": e.get("msg", "invalid value")})
    return out


def from_pydantic(exc) -> ValidationFailed:
    """Turn a pydantic ValidationError raised inside a handler into a 400."""
    return ValidationFailed("Validation failed", _field_errors(exc.errors()))


async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=400, content={"detail": exc.detail, "errors": exc.errors})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": _field_errors(exc.errors())},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[API] %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
