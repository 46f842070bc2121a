from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.exceptions import FleetDomainError
from services.results import OperationResult

ERROR_TITLES = {
    401: "Authentication Error",
    402: "Subscription Required",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    429: "Rate Limited",
    503: "Service Unavailable",
}


class ValidationError(HTTPException):
    def __init__(self, message: str, field: str = None):
        detail = {"error": "validation_error", "message": message}
        if field:
            detail["field"] = field
        super().__init__(status_code=422, detail=detail)


class OperationFailed(HTTPException):
    """HTTP form of a failed OperationResult."""

    def __init__(self, result: OperationResult):
        detail = {
            "error": ERROR_TITLES.get(result.status_code, "Error"),
            "error_type": result.error_type,
            "message": result.message,
            "field": result.field,
        }
        super().__init__(status_code=result.status_code, detail=detail)


def result_or_raise(result: OperationResult):
    """Returns the data of a successful result; raises OperationFailed otherwise."""
    if not result.success:
        raise OperationFailed(result)
    return result.data


async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation Error",
            "error_type": "ValidationError",
            "message": exc.detail.get("message", "Validation error"),
            "field": exc.detail.get("field"),
        },
    )


async def request_validation_handler(request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation Error",
            "error_type": "FleetValidationError",
            "message": first.get("msg", "Invalid input").removeprefix("Value error, "),
            "field": ".".join(loc) or None,
        },
    )


async def operation_failed_handler(request, exc: OperationFailed):
    return JSONResponse(status_code=exc.status_code, content=exc.detail)


async def domain_exception_handler(request, exc: FleetDomainError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": ERROR_TITLES.get(exc.status_code, "Error"),
            "error_type": exc.__class__.__name__,
            "message": exc.message,
            "field": exc.field,
        },
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(OperationFailed, operation_failed_handler)
    app.add_exception_handler(FleetDomainError, domain_exception_handler)
