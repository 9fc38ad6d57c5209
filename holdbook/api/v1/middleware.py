import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from holdbook.core import BaseError, ErrorCode, SystemFailure

logger = logging.getLogger(__name__)


async def base_error_handler(request: Request, exc: BaseError):
    """Render our own exceptions as partner error bodies"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handler for request validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query", "data")),
            "message": error["msg"],
        })
    message = "; ".join(f"{e['field']}: {e['message']}" if e["field"] else e["message"] for e in errors)
    return JSONResponse(
        status_code=400,
        content={
            "errorCode": ErrorCode.VALIDATION_FAILURE.value,
            "errorMessage": message or "Validation failed",
            "errors": errors,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = ErrorCode.RESOURCE_NOT_FOUND if exc.status_code == 404 else ErrorCode.VALIDATION_FAILURE
    return JSONResponse(
        status_code=exc.status_code,
        content={"errorCode": code.value, "errorMessage": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback, answer without internals"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=SystemFailure().to_body())
