# utils/validators.py — декларативная валидация полей шагов и форм
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Optional, Tuple
from urllib.parse import urlparse

from config import settings

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

KINDS = ("str", "int", "float", "bool", "date", "email", "url_list", "list", "records", "mapping")


@dataclass(frozen=True)
class FieldFailure:
    field: str
    reason: str

    def as_dict(self) -> dict:
        return {"field": self.field, "reason": self.reason}


@dataclass(frozen=True)
class FieldSpec:
    """
    Правило для одного поля формы.

    kind задаёт тип и приведение значения; остальные атрибуты задают ограничения,
    проверяемые только для непустого значения. Пустое значение обязательного
    поля даёт ошибку "is required".
    """

    name: str
    label: str = ""
    kind: str = "str"
    required: bool = True
    min_length: Optional[int] = None
    max_length: Optional[int] = 255
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    choices: Optional[Tuple[str, ...]] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    extensions: Optional[Tuple[str, ...]] = None
    default: Any = None

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Неизвестный тип поля {self.kind!r} для {self.name}")

    @property
    def title(self) -> str:
        return self.label or self.name.replace("_", " ").capitalize()


@dataclass
class ValidationResult:
    values: dict = field(default_factory=dict)
    failures: list[FieldFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def first_failure(self) -> Optional[FieldFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, field_name: str, reason: str) -> None:
        self.failures.append(FieldFailure(field_name, reason))


# Межполевое правило: получает результат с уже приведёнными значениями и дополняет его
CrossFieldRule = Callable[[ValidationResult], None]


def validate_string_length(
    value: str,
    max_length: Optional[int],
    field_name: str = "field",
    min_length: Optional[int] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Валидация длины строки.

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{field_name} must be text"
    if len(value.strip()) == 0:
        return False, f"{field_name} is required"
    if max_length is not None and len(value) > max_length:
        return False, f"{field_name} is too long (max {max_length} characters)"
    if min_length is not None and len(value.strip()) < min_length:
        return False, f"{field_name} must be at least {min_length} characters"
    return True, None


def validate_date_range(date_value, min_date=None, max_date=None, field_name: str = "date") -> Tuple[bool, Optional[str]]:
    """
    Валидация диапазона даты.

    Returns:
        (is_valid, error_message)
    """
    if date_value is None:
        return True, None

    if min_date and date_value < min_date:
        return False, f"{field_name} cannot be earlier than {min_date.isoformat()}"
    if max_date and date_value > max_date:
        return False, f"{field_name} cannot be later than {max_date.isoformat()}"

    return True, None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _coerce(spec: FieldSpec, value: Any) -> Tuple[Any, Optional[str]]:
    """Приведение значения к типу поля. Возвращает (значение, ошибка)."""
    title = spec.title
    kind = spec.kind
    if kind in ("str", "email"):
        if not isinstance(value, str):
            return None, f"{title} must be text"
        value = value.strip()
        if kind == "email" and not EMAIL_RE.match(value):
            return None, f"{title} must be a valid email address"
        return value, None
    if kind == "int":
        if isinstance(value, bool):
            return None, f"{title} must be a whole number"
        if isinstance(value, int):
            return value, None
        if isinstance(value, float) and value.is_integer():
            return int(value), None
        if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
            return int(value.strip()), None
        return None, f"{title} must be a whole number"
    if kind == "float":
        if isinstance(value, bool):
            return None, f"{title} must be a number"
        if isinstance(value, (int, float)):
            return float(value), None
        if isinstance(value, str):
            try:
                return float(value.strip()), None
            except ValueError:
                pass
        return None, f"{title} must be a number"
    if kind == "bool":
        if isinstance(value, bool):
            return value, None
        return None, f"{title} must be true or false"
    if kind == "date":
        if isinstance(value, date):
            return value, None
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()), None
            except ValueError:
                pass
        return None, f"{title} must be a date (YYYY-MM-DD)"
    if kind in ("list", "url_list"):
        if not isinstance(value, (list, tuple)):
            return None, f"{title} must be a list"
        items = []
        for item in value:
            if not isinstance(item, str) or not item.strip():
                return None, f"{title} must contain only non-empty text values"
            items.append(item.strip())
        if kind == "url_list":
            for url in items:
                parsed = urlparse(url)
                if parsed.scheme not in ("http", "https") or not parsed.netloc:
                    return None, f"{title}: {url!r} is not an uploaded file URL"
                if spec.extensions and not parsed.path.lower().endswith(spec.extensions):
                    allowed = ", ".join(spec.extensions)
                    return None, f"{title}: unsupported file type (allowed: {allowed})"
        return items, None
    if kind == "records":
        if not isinstance(value, (list, tuple)) or not all(isinstance(item, dict) for item in value):
            return None, f"{title} must be a list of objects"
        return [dict(item) for item in value], None
    if kind == "mapping":
        if not isinstance(value, dict):
            return None, f"{title} must be an object"
        return dict(value), None
    return value, None


def validate_field(spec: FieldSpec, raw: Any) -> Tuple[Any, Optional[str]]:
    """Проверка одного поля. Возвращает (приведённое значение, сообщение об ошибке или None)."""
    if _is_empty(raw):
        if spec.required:
            return None, f"{spec.title} is required"
        if isinstance(spec.default, (list, dict)):
            return type(spec.default)(spec.default), None
        return spec.default, None

    value, error = _coerce(spec, raw)
    if error:
        return None, error

    title = spec.title
    if spec.kind in ("str", "email"):
        ok, error = validate_string_length(value, spec.max_length, title, spec.min_length)
        if not ok:
            return None, error
    if spec.kind in ("int", "float"):
        if spec.min_value is not None and value < spec.min_value:
            return None, f"{title} must be at least {spec.min_value:g}"
        if spec.max_value is not None and value > spec.max_value:
            return None, f"{title} must be at most {spec.max_value:g}"
    if spec.kind == "date":
        ok, error = validate_date_range(value, field_name=title)
        if not ok:
            return None, error
    if spec.choices is not None:
        candidates = value if isinstance(value, list) else [value]
        for candidate in candidates:
            if candidate not in spec.choices:
                return None, f"{title}: {candidate!r} is not one of {', '.join(spec.choices)}"
    if isinstance(value, (list, dict)):
        if spec.min_items is not None and len(value) < spec.min_items:
            return None, f"{title} requires at least {spec.min_items} item(s)"
        if spec.max_items is not None and len(value) > spec.max_items:
            return None, f"{title} allows at most {spec.max_items} item(s)"
    return value, None


def validate_fields(
    fields: Iterable[FieldSpec],
    values: Optional[dict],
    rules: Iterable[CrossFieldRule] = (),
) -> ValidationResult:
    """
    Валидация набора полей: сначала каждое поле по порядку объявления,
    затем межполевые правила. Неизвестные ключи отбрасываются.
    """
    values = values or {}
    result = ValidationResult()
    for spec in fields:
        value, error = validate_field(spec, values.get(spec.name))
        if error:
            result.fail(spec.name, error)
            # Для межполевых правил оставляем исходное значение
            result.values[spec.name] = values.get(spec.name)
        else:
            result.values[spec.name] = value
    for rule in rules:
        rule(result)
    if result.failures:
        logger.debug(f"Validation failed: {[f.field for f in result.failures]}")
    return result


# --- межполевые правила ---


def unique_ranks(field_name: str, categories: Iterable[str], low: int = 1, high: int = 10) -> CrossFieldRule:
    """Ранги по категориям: необязательны; заданные ранги целые в [low, high] и не повторяются."""
    categories = tuple(categories)

    def rule(result: ValidationResult) -> None:
        ranks = result.values.get(field_name)
        if any(f.field == field_name for f in result.failures) or not isinstance(ranks, dict):
            return
        cleaned: dict[str, int] = {}
        seen: dict[int, str] = {}
        for category in categories:
            raw = ranks.get(category)
            if raw is None or raw == "":
                continue
            if isinstance(raw, bool) or not isinstance(raw, (int, str)) or not str(raw).strip().isdigit():
                result.fail(f"{field_name}.{category}", f"Rank for {category} must be a whole number")
                continue
            rank = int(raw)
            if not low <= rank <= high:
                result.fail(f"{field_name}.{category}", f"Rank must be between {low} and {high}")
                continue
            if rank in seen:
                result.fail(
                    f"{field_name}.{category}",
                    f"Rank {rank} is already used for {seen[rank]}",
                )
                continue
            seen[rank] = category
            cleaned[category] = rank
        unknown = sorted(set(ranks) - set(categories))
        if unknown:
            result.fail(field_name, f"Unknown ranking categories: {', '.join(unknown)}")
        result.values[field_name] = cleaned

    return rule


def required_signatures(field_name: str, document_types: Iterable[str]) -> CrossFieldRule:
    """Каждый обязательный документ подписан: рисунок подписи, печатное и подписанное имя."""
    document_types = tuple(document_types)

    def rule(result: ValidationResult) -> None:
        signatures = result.values.get(field_name)
        if not isinstance(signatures, dict):
            return
        cleaned = {}
        for doc_type in document_types:
            entry = signatures.get(doc_type)
            path = f"{field_name}.{doc_type}"
            if not isinstance(entry, dict):
                result.fail(path, f"Please sign the {doc_type.replace('_', ' ')} document")
                continue
            missing = [
                key for key in ("signature_data", "name_printed", "name_signed")
                if _is_empty(entry.get(key)) or not isinstance(entry.get(key), str)
            ]
            if missing:
                result.fail(path, f"Signature for {doc_type.replace('_', ' ')} is incomplete: {', '.join(missing)}")
                continue
            cleaned[doc_type] = {
                "signature_data": entry["signature_data"],
                "name_printed": entry["name_printed"].strip(),
                "name_signed": entry["name_signed"].strip(),
            }
        result.values[field_name] = cleaned

    return rule


def toggle_payment_method(
    selected: Iterable[str],
    method: str,
    default: Optional[str] = None,
) -> Tuple[list[str], Optional[str]]:
    """
    Переключение способа оплаты. Снятие последнего способа не оставляет
    пустой набор: возвращается способ по умолчанию и предупреждение.
    """
    default = default or settings.DEFAULT_PAYMENT_METHOD
    methods = list(dict.fromkeys(selected))
    if method in methods:
        methods.remove(method)
    else:
        methods.append(method)
    if not methods:
        return [default], f"At least one payment method is required. Keeping {default}."
    return methods, None


def at_least_one_payment_method(field_name: str, default: Optional[str] = None) -> CrossFieldRule:
    """Пустой набор способов оплаты заменяется способом по умолчанию с предупреждением."""

    def rule(result: ValidationResult) -> None:
        fallback = default or settings.DEFAULT_PAYMENT_METHOD
        methods = result.values.get(field_name)
        if any(f.field == field_name for f in result.failures):
            return
        if not methods:
            result.values[field_name] = [fallback]
            result.warnings.append(f"At least one payment method is required. Keeping {fallback}.")
        else:
            result.values[field_name] = list(dict.fromkeys(methods))

    return rule


def to_storable(values: dict) -> dict:
    """Значения для JSON-колонки: даты в ISO-строки, вложенные структуры рекурсивно."""

    def convert(value):
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        return value

    return convert(values)


def date_order(earlier: str, later: str) -> CrossFieldRule:
    """Если заданы обе даты, later не раньше earlier."""

    def rule(result: ValidationResult) -> None:
        start = result.values.get(earlier)
        end = result.values.get(later)
        if isinstance(start, date) and isinstance(end, date):
            ok, error = validate_date_range(end, min_date=start, field_name=later.replace("_", " ").capitalize())
            if not ok:
                result.fail(later, error)

    return rule
