# utils/logging_config.py — логирование с контекстом запроса
import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

# Контекст текущего запроса: кто (registrant) и что делает (action)
_request_context: ContextVar[dict] = ContextVar("request_context", default={})

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [registrant:%(registrant)s] [action:%(action)s] - %(message)s"


class ContextualFormatter(logging.Formatter):
    """Форматтер логов с добавлением контекста."""

    def format(self, record: logging.LogRecord) -> str:
        context = _request_context.get({})
        record.registrant = context.get("registrant", "-")
        record.action = context.get("action", "-")
        return super().format(record)


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Настройка логирования. Повторный вызов заменяет обработчик, а не добавляет второй."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = ContextualFormatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler._contextual = True  # отметка нашего обработчика

    root_logger = logging.getLogger()
    for old in [h for h in root_logger.handlers if getattr(h, "_contextual", False)]:
        root_logger.removeHandler(old)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Шумные библиотеки
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def set_log_context(registrant: Optional[str] = None, action: Optional[str] = None) -> None:
    """Установить контекст для логирования."""
    context = {}
    if registrant is not None:
        context["registrant"] = registrant
    if action is not None:
        context["action"] = action
    _request_context.set(context)


def update_log_context(**values: str) -> None:
    context = dict(_request_context.get({}))
    context.update({k: v for k, v in values.items() if v is not None})
    _request_context.set(context)


def clear_log_context() -> None:
    """Очистить контекст логирования."""
    _request_context.set({})
