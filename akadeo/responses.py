"""Response envelope and the error boundary shared by every endpoint."""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from akadeo.errors import AppError, ErrorType

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_HTTP_ERROR_TYPES = {
    status.HTTP_401_UNAUTHORIZED: (ErrorType.AUTH, "E_NOT_AUTHENTICATED"),
    status.HTTP_404_NOT_FOUND: (ErrorType.NOT_FOUND, "E_ROUTE_NOT_FOUND"),
    status.HTTP_405_METHOD_NOT_ALLOWED: (ErrorType.METHOD_NOT_ALLOWED, "E_METHOD_NOT_ALLOWED"),
    status.HTTP_409_CONFLICT: (ErrorType.CONFLICT, None),
    status.HTTP_429_TOO_MANY_REQUESTS: (ErrorType.RATE_LIMIT, "E_RATE_LIMITED"),
}


def get_request_id(request: Request) -> str:
    """Get the correlation id for the request, assigning one if needed."""
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


def response_meta(request: Request) -> dict[str, str]:
    return {
        "requestId": get_request_id(request),
        "ts": datetime.now(UTC).isoformat(),
    }


def ok(request: Request, data: Any = None) -> dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return {"ok": True, "data": data, "meta": response_meta(request)}


def error_response(
    request: Request,
    status_code: int,
    error_type: ErrorType,
    message: str,
    code: str | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render the failure envelope."""
    body = {
        "ok": False,
        "error": {
            "type": str(error_type),
            "message": message,
            "code": code,
            "details": details,
        },
        "meta": response_meta(request),
    }
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"Request {get_request_id(request)} failed with {exc.code}: {exc.message}",
            exc_info=exc.__cause__ is not None,
        )
    return error_response(request, exc.status_code, exc.error_type, exc.message, exc.code, exc.details)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            ErrorType.VALIDATION,
            "Invalid JSON payload.",
            "E_INVALID_JSON",
        )

    field = None
    if errors:
        location = [part for part in errors[0].get("loc", ()) if part not in ("body", "path", "query")]
        field = ".".join(str(part) for part in location) or None
    return error_response(
        request,
        422,
        ErrorType.VALIDATION,
        "The request body is invalid.",
        "E_INVALID_INPUT",
        {"field": field},
    )


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    default_type = ErrorType.INTERNAL if exc.status_code >= 500 else ErrorType.VALIDATION
    error_type, code = _HTTP_ERROR_TYPES.get(exc.status_code, (default_type, None))
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        message = "API route not found."
    elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        message = "Method not allowed for this endpoint."
    else:
        message = str(exc.detail)
    return error_response(
        request, exc.status_code, error_type, message, code, headers=getattr(exc, "headers", None)
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Request {get_request_id(request)} failed: {exc}", exc_info=exc)
    if request.app.state.settings.is_production:
        message = "Unexpected server error."
    else:
        message = str(exc) or "Unexpected server error."
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorType.INTERNAL,
        message,
        "E_INTERNAL",
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the envelope renderers for every error path."""
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        request_id = get_request_id(request)
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        return response
