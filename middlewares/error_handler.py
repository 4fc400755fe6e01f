# middlewares/error_handler.py — централизованная обработка ошибок API
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from services.errors import NotAuthenticated, StoreError, ValidationFailed
from services.registration_store import db_error_message

logger = logging.getLogger(__name__)


class RateLimitExceeded(Exception):
    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded, retry after {retry_after}s")


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    # Локальная ошибка: показывается рядом с полем, пользователь остаётся на шаге
    body = {
        "field": exc.field,
        "detail": exc.message,
        "errors": [f.as_dict() for f in exc.failures],
    }
    step_key = getattr(exc, "step_key", None)
    if step_key:
        body["step"] = step_key
    return JSONResponse(body, status_code=422)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"Store error on {request.url.path} ({exc.operation}): {exc.message}")
    return JSONResponse({"detail": exc.message, "operation": exc.operation}, status_code=exc.status_code)


async def not_authenticated_handler(request: Request, exc: NotAuthenticated) -> JSONResponse:
    logger.info(f"Unauthenticated request to {request.url.path}: {exc.reason}")
    return JSONResponse(
        {"detail": exc.reason, "redirect": settings.SIGN_IN_URL},
        status_code=401,
        headers={"Location": settings.SIGN_IN_URL},
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        {"detail": f"Too many requests. Please wait {exc.retry_after} seconds."},
        status_code=429,
        headers={"Retry-After": str(exc.retry_after)},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Ошибки формы запроса приводим к тому же виду, что и ошибки полей
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ()) if p not in ("body", "query", "path")), "reason": e.get("msg", "")}
        for e in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "reason": "Invalid request"}
    return JSONResponse({"field": first["field"], "detail": first["reason"], "errors": errors}, status_code=422)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Ошибка коммита в конце обработчика: транзакция уже откатана сессией
    logger.error(f"Database error on {request.url.path}: {db_error_message(exc)}", exc_info=True)
    return JSONResponse({"detail": db_error_message(exc)}, status_code=503)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse({"detail": "Something went wrong. Please try again later."}, status_code=500)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(NotAuthenticated, not_authenticated_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
