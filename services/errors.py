# services/errors.py — исключения предметной области
from typing import Optional

from utils.validators import FieldFailure


class MarketplaceError(Exception):
    """Базовое исключение сервисов."""


class ValidationFailed(MarketplaceError):
    """Локальная ошибка валидации: показывается рядом с полем, без обращения к БД."""

    def __init__(self, failures: list[FieldFailure]):
        if not failures:
            raise ValueError("ValidationFailed requires at least one failure")
        self.failures = list(failures)
        super().__init__(self.message)

    @property
    def field(self) -> str:
        return self.failures[0].field

    @property
    def message(self) -> str:
        return self.failures[0].reason


class StepBlocked(ValidationFailed):
    """Переход вперёд запрещён: текущий шаг мастера не прошёл валидацию."""

    def __init__(self, step_key: str, failures: list[FieldFailure]):
        self.step_key = step_key
        super().__init__(failures)


class InvalidSelection(ValidationFailed):
    """Некорректный выбор в дереве фильтров."""

    def __init__(self, category: str, reason: str):
        super().__init__([FieldFailure(category, reason)])


class NotAuthenticated(MarketplaceError):
    """Нет действительного токена: пользователя отправляют на вход."""

    def __init__(self, reason: str = "Please sign in first"):
        self.reason = reason
        super().__init__(reason)


class StoreError(MarketplaceError):
    """Ошибка хранилища (сеть, доступ, ограничения). Повторов нет, сообщение уходит пользователю."""

    status_code = 503

    def __init__(self, message: str, *, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(message)


class ConflictError(StoreError):
    status_code = 409


class NotFoundError(StoreError):
    status_code = 404
