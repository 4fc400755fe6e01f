# middlewares/rate_limiter.py — rate limiting для защиты от спама
import logging
import time
from collections import defaultdict
from typing import Optional

from fastapi import Depends, Request

from config import settings
from middlewares.error_handler import RateLimitExceeded
from services.context import AuthContext
from web.auth import get_auth_context

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Ограничение частоты запросов одного пользователя (скользящее окно в памяти).
    Используется как dependency на операциях записи: отзывы, сообщения.
    """

    def __init__(self, max_requests: Optional[int] = None, period: Optional[int] = None):
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._max_requests = max_requests or settings.RATE_LIMIT_REQUESTS
        self._period = period or settings.RATE_LIMIT_PERIOD

    def _cleanup_old_requests(self, key: str) -> None:
        """Удалить старые запросы вне периода."""
        cutoff = time.monotonic() - self._period
        recent = [t for t in self._requests.get(key, ()) if t > cutoff]
        if recent:
            self._requests[key] = recent
        else:
            self._requests.pop(key, None)

    def is_rate_limited(self, key: str) -> bool:
        self._cleanup_old_requests(key)
        return len(self._requests.get(key, ())) >= self._max_requests

    def record(self, key: str) -> None:
        self._requests[key].append(time.monotonic())

    def hit(self, key: str) -> None:
        """Учесть запрос или бросить RateLimitExceeded."""
        if self.is_rate_limited(key):
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitExceeded(self._period)
        self.record(key)

    def reset(self) -> None:
        self._requests.clear()

    async def __call__(self, request: Request, auth: AuthContext = Depends(get_auth_context)) -> None:
        route = request.scope.get("route")
        self.hit(f"{auth.user_id}:{getattr(route, 'path', request.url.path)}")


write_rate_limiter = RateLimiter()
