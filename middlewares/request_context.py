# middlewares/request_context.py — контекст логирования и время выполнения запроса
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from utils.logging_config import clear_log_context, set_log_context

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Ставит action в контекст логов; пользователь добавляется при проверке токена."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        action = f"{request.method} {request.url.path}"
        set_log_context(action=action)
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time
            if duration > SLOW_REQUEST_SECONDS:  # Логируем только медленные запросы
                logger.warning(f"Slow request: {duration:.2f}s for '{action}'")
            return response
        finally:
            clear_log_context()
