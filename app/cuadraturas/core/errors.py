import logging
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog, ErrorDefinition

logger = logging.getLogger(__name__)

# HTTPException statuses raised by FastAPI itself (auth scheme, routing)
_HTTP_STATUS_ERRORS = {
    401: ErrorCatalog.INVALID_TOKEN,
    403: ErrorCatalog.PERMISSION_DENIED,
    404: ErrorCatalog.NOT_FOUND,
}


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", "")


def _mark_error(request: Request, code: str, exc: Exception) -> None:
    request.state.error_code = code
    request.state.error_class = type(exc).__name__


def _json_safe(value):
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Exception):
        return str(value)
    return value


def _validation_issues(exc: RequestValidationError) -> dict:
    issues = []
    for error in exc.errors():
        loc = [str(item) for item in error.get("loc", ())]
        issues.append(
            {
                "field": ".".join(item for item in loc if item not in {"body", "query", "path"}) or None,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "value_error"),
            }
        )
    return {"errors": issues}


def error_response(code: str, message: str, details: object, trace_id: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": _json_safe(details),
            "trace_id": trace_id,
        },
    )


def _from_definition(request: Request, error: ErrorDefinition, details: object, status_code: int | None = None):
    return error_response(
        code=error.code,
        message=error.message,
        details=details,
        trace_id=_trace_id(request),
        status_code=status_code or error.status_code,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        _mark_error(request, exc.error.code, exc)
        return _from_definition(request, exc.error, exc.details)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        error = _HTTP_STATUS_ERRORS.get(exc.status_code)
        if error is None:
            _mark_error(request, "HTTP_ERROR", exc)
            return error_response(
                code="HTTP_ERROR",
                message=str(exc.detail),
                details=None,
                trace_id=_trace_id(request),
                status_code=exc.status_code,
            )
        _mark_error(request, error.code, exc)
        return _from_definition(request, error, {"message": str(exc.detail)}, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        _mark_error(request, ErrorCatalog.VALIDATION_ERROR.code, exc)
        return _from_definition(request, ErrorCatalog.VALIDATION_ERROR, _validation_issues(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        _mark_error(request, ErrorCatalog.INTERNAL_ERROR.code, exc)
        logger.exception("Unhandled error", extra={"trace_id": _trace_id(request)})
        return _from_definition(request, ErrorCatalog.INTERNAL_ERROR, {"type": type(exc).__name__})
