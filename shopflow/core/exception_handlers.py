import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from shopflow.core.errors import (
    InsufficientStockError,
    InvalidSignatureError,
    InvalidTransitionError,
    NotFoundError,
    ShopflowError,
)
from shopflow.schemas.response import ErrorDetail, ErrorResponse

log = logging.getLogger(__name__)


def _error_body(code: str, message, **extra):
    """Builds the error envelope; every response gets a fresh request id."""
    error = ErrorDetail(code=code, message=message, **extra)
    return jsonable_encoder(ErrorResponse(error=error))


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    return JSONResponse(status_code=exc.status_code, content=_error_body("http_error", exc.detail))


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    body = _error_body("validation_error", "Invalid input data", details=jsonable_encoder(exc.errors()))
    return JSONResponse(status_code=422, content=body)


def domain_exception_handler(request: Request, exc: ShopflowError):
    """Maps shopflow domain errors raised by local commands to 4xx responses."""
    if isinstance(exc, NotFoundError):
        status_code, code = 404, "not_found"
    elif isinstance(exc, InvalidSignatureError):
        status_code, code = 403, "invalid_signature"
    elif isinstance(exc, (InvalidTransitionError, InsufficientStockError)):
        status_code, code = 409, "conflict"
    else:
        status_code, code = 400, "domain_error"
    return JSONResponse(status_code=status_code, content=_error_body(code, str(exc)))


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    log.exception(f"Unhandled exception on path: {request.url.path}")
    return JSONResponse(status_code=500, content=_error_body("server_error", "Internal Server Error"))


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ShopflowError, domain_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
