import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger()

GENERIC_ERROR = "Internal server error"


def error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)

async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return error_response(400, "Invalid request")
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"Invalid {field}: {first.get('msg')}" if field else "Invalid request body"
    return error_response(400, message)

async def store_error_handler(request: Request, exc: SQLAlchemyError):
    # подробности только в лог, клиенту - общее сообщение
    logger.exception("store_error", method=request.method, path=request.url.path)
    return error_response(500, GENERIC_ERROR)

async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unexpected_error", method=request.method, path=request.url.path)
    return error_response(500, GENERIC_ERROR)
