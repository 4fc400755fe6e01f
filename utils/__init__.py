# utils — общие утилиты: кэш, логирование, валидация полей
from utils.cache import get_cache
from utils.logging_config import clear_log_context, set_log_context, setup_logging

__all__ = ["get_cache", "setup_logging", "set_log_context", "clear_log_context"]
