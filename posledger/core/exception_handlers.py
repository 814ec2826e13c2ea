import logging
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

from posledger.schemas.response import ErrorDetail, ErrorResponse

log = logging.getLogger("posledger.errors")

# Error codes by status; anything else is a plain "http_error"
ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    409: "conflict",
}


def error_response(status_code: int, code: str, message, details=None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException raised by the routes (missing account header, unknown record, bad batch)."""
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return error_response(exc.status_code, ERROR_CODES.get(exc.status_code, "http_error"), exc.detail)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body did not match the record schema (422)."""
    log.warning(f"Rejected body on {request.url.path}: {len(exc.errors())} validation error(s).")
    return error_response(422, "validation_error", "Invalid input data", jsonable_encoder(exc.errors()))


def generic_exception_handler(request: Request, exc: Exception):
    """Anything the routes did not turn into an HTTPException (500)."""
    log.error(f"Unhandled exception on path: {request.url.path}", exc_info=exc)
    return error_response(500, "server_error", "Internal Server Error")


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
