# filters/taxonomy.py — дерево категорий фильтров поиска (данные из JSON)
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class FilterOption(BaseModel):
    """Вариант внутри категории; может раскрывать дочерние категории."""

    label: str = Field(..., min_length=1)
    children: list["FilterCategory"] = Field(default_factory=list)


class FilterCategory(BaseModel):
    key: str = Field(..., min_length=1)
    label: str
    options: list[FilterOption] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_options(self):
        if not self.options:
            raise ValueError(f"Категория {self.key!r} без вариантов")
        seen = set()
        for option in self.options:
            if option.label in seen:
                raise ValueError(f"Категория {self.key!r}: вариант {option.label!r} указан дважды")
            seen.add(option.label)
        return self

    def option(self, label: str) -> Optional[FilterOption]:
        for option in self.options:
            if option.label == label:
                return option
        return None


FilterOption.model_rebuild()


class TaxonomyDocument(BaseModel):
    categories: list[FilterCategory] = Field(..., min_length=1)


class Taxonomy:
    """
    Таксономия фильтров с индексами: категория по ключу и родитель
    (категория, вариант) для каждой вложенной категории.
    Ключи категорий уникальны на всём дереве.
    """

    def __init__(self, document: TaxonomyDocument):
        self.document = document
        self._by_key: dict[str, FilterCategory] = {}
        self._parent: dict[str, tuple[str, str]] = {}
        for category, parent in self._walk(document.categories, None):
            if category.key in self._by_key:
                raise ValueError(f"Ключ категории {category.key!r} не уникален")
            self._by_key[category.key] = category
            if parent is not None:
                self._parent[category.key] = parent

    @classmethod
    def _walk(
        cls,
        categories: list[FilterCategory],
        parent: Optional[tuple[str, str]],
    ) -> Iterator[tuple[FilterCategory, Optional[tuple[str, str]]]]:
        for category in categories:
            yield category, parent
            for option in category.options:
                yield from cls._walk(option.children, (category.key, option.label))

    def keys(self) -> list[str]:
        return list(self._by_key)

    def __contains__(self, key: str) -> bool:
        return key in self._by_key

    def category(self, key: str) -> FilterCategory:
        try:
            return self._by_key[key]
        except KeyError:
            raise KeyError(f"Неизвестная категория фильтра: {key}") from None

    def parent_of(self, key: str) -> Optional[tuple[str, str]]:
        """(ключ родительской категории, вариант) или None для корневой категории."""
        return self._parent.get(key)

    def children_of(self, key: str, label: str) -> list[str]:
        option = self.category(key).option(label)
        if option is None:
            return []
        return [c.key for c in option.children]

    def descendants_of(self, key: str, label: str) -> list[str]:
        """Все категории, достижимые из варианта label категории key (на любой глубине)."""
        out: list[str] = []
        stack = list(reversed(self.children_of(key, label)))
        while stack:
            child_key = stack.pop()
            out.append(child_key)
            nested = [c.key for option in self.category(child_key).options for c in option.children]
            stack.extend(reversed(nested))
        return out

    def to_dict(self) -> dict:
        return self.document.model_dump()


def load_taxonomy(path: Path) -> Taxonomy:
    """Читает и валидирует JSON таксономии."""
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    taxonomy = Taxonomy(TaxonomyDocument.model_validate(raw))
    logger.info(f"Filter taxonomy loaded: {len(taxonomy.keys())} categories from {path}")
    return taxonomy


@lru_cache(maxsize=1)
def get_taxonomy() -> Taxonomy:
    from config import settings

    return load_taxonomy(settings.FILTER_TAXONOMY_PATH)
