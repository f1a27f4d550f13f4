import math
import traceback
from datetime import datetime, timezone

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from admissions_scheduler.base.errors import GuardRejection, SchedulingError
from admissions_scheduler.base.logging_config import setup_logger
from admissions_scheduler.base.metrics import api_exception_counter

logger = setup_logger("error_handler", log_file="errors.log")


def error_body(code: str, message: str, details=None) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def register_exception_handlers(app):
    @app.exception_handler(SchedulingError)
    async def scheduling_exception_handler(request: Request, exc: SchedulingError):
        api_exception_counter.labels(type=type(exc).__name__).inc()
        headers = None
        if isinstance(exc, GuardRejection):
            headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after_seconds)))}
        if exc.status_code >= 500:
            logger.error(f"[{type(exc).__name__}] {exc.message} | Path={request.url.path}")
        else:
            logger.warning(f"[{type(exc).__name__}] {exc.message} | Path={request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.details),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"[HTTPException] {exc.detail} | Path={request.url.path}")
        api_exception_counter.labels(type="http").inc()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(f"HTTP_{exc.status_code}", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        logger.warning(f"[ValidationError] Path={request.url.path} | {errors}")
        api_exception_counter.labels(type="validation").inc()
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", "Invalid request parameters", {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"[UnhandledError] {str(exc)}\n{traceback.format_exc()}")
        api_exception_counter.labels(type="unhandled").inc()
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "Internal server error"),
        )
