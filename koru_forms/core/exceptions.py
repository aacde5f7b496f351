import json
import logging
from datetime import datetime, timezone

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = ("password", "username")


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _error_body(status_code: int, message, request: Request) -> dict:
    return {
        "statusCode": status_code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }


def safe_body(body) -> str:
    """Serialize a request body for logs without credentials."""
    if isinstance(body, dict):
        body = {k: v for k, v in body.items() if k not in SENSITIVE_FIELDS}
    try:
        return json.dumps(body, default=str)
    except (TypeError, ValueError):
        return "<unserializable>"


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("[%s] %s - Status: %s - Error: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.detail, request),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    logger.warning("[%s] %s - Status: 400 - Validation: %s - Body: %s",
                   request.method, request.url.path, messages, safe_body(exc.body))
    return JSONResponse(status_code=400, content=_error_body(400, messages, request))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[%s] %s - Status: 500 - Unhandled %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse(status_code=500, content=_error_body(500, "Internal server error", request))


def register_exception_handlers(app):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
