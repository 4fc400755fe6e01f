# filters/selection.py — выбор в дереве фильтров с каскадной очисткой
import logging
from typing import Iterable, Mapping, Optional

from filters.taxonomy import Taxonomy
from services.errors import InvalidSelection

logger = logging.getLogger(__name__)


class FilterSelection:
    """
    Неизменяемый выбор: ключ категории -> выбранные варианты.

    Инвариант: вложенная категория может быть непустой только если выбран
    её родительский вариант. Снятие варианта очищает все категории,
    достижимые из него, на любой глубине.
    """

    def __init__(
        self,
        taxonomy: Taxonomy,
        selected: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self.taxonomy = taxonomy
        self._selected: dict[str, tuple[str, ...]] = {}
        for key, labels in (selected or {}).items():
            labels = list(dict.fromkeys(labels))
            if not labels:
                continue
            if key not in taxonomy:
                raise InvalidSelection(key, f"Unknown filter category: {key}")
            category = taxonomy.category(key)
            for label in labels:
                if category.option(label) is None:
                    raise InvalidSelection(key, f"Unknown option {label!r} for {category.label}")
            self._selected[key] = self._ordered(key, labels)
        for key in self._selected:
            if not self.is_visible(key):
                parent_key, parent_label = taxonomy.parent_of(key)
                raise InvalidSelection(key, f"Select {parent_label!r} in {parent_key} first")

    def _ordered(self, key: str, labels: Iterable[str]) -> tuple[str, ...]:
        chosen = set(labels)
        return tuple(o.label for o in self.taxonomy.category(key).options if o.label in chosen)

    @classmethod
    def empty(cls, taxonomy: Taxonomy) -> "FilterSelection":
        return cls(taxonomy)

    @classmethod
    def from_query(cls, taxonomy: Taxonomy, params: Mapping[str, list[str]]) -> "FilterSelection":
        """Из мультизначных query-параметров; ключи вне таксономии игнорируются."""
        return cls(taxonomy, {k: v for k, v in params.items() if k in taxonomy})

    def selected(self, key: str) -> list[str]:
        return list(self._selected.get(key, ()))

    def is_selected(self, key: str, label: str) -> bool:
        return label in self._selected.get(key, ())

    def is_visible(self, key: str) -> bool:
        parent = self.taxonomy.parent_of(key)
        if parent is None:
            return True
        parent_key, parent_label = parent
        return self.is_selected(parent_key, parent_label) and self.is_visible(parent_key)

    def toggle(self, key: str, label: str) -> "FilterSelection":
        if key not in self.taxonomy:
            raise InvalidSelection(key, f"Unknown filter category: {key}")
        category = self.taxonomy.category(key)
        if category.option(label) is None:
            raise InvalidSelection(key, f"Unknown option {label!r} for {category.label}")
        if not self.is_visible(key):
            parent_key, parent_label = self.taxonomy.parent_of(key)
            raise InvalidSelection(key, f"Select {parent_label!r} in {parent_key} first")

        new = {k: list(v) for k, v in self._selected.items()}
        current = new.get(key, [])
        if label in current:
            current.remove(label)
            cleared = self.taxonomy.descendants_of(key, label)
            for child_key in cleared:
                new.pop(child_key, None)
            if cleared:
                logger.debug(f"Filter {key}:{label} deselected, cleared {cleared}")
        else:
            current.append(label)
        new[key] = current
        return FilterSelection(self.taxonomy, new)

    def clear(self, key: str) -> "FilterSelection":
        """Очистить категорию вместе со всеми её потомками."""
        selection = self
        for label in self.selected(key):
            selection = selection.toggle(key, label)
        return selection

    def as_dict(self) -> dict[str, list[str]]:
        return {k: list(v) for k, v in self._selected.items() if v}

    def to_query(self) -> list[tuple[str, str]]:
        """Пары (категория, вариант) для повторяющихся query-параметров."""
        return [(k, label) for k, labels in self._selected.items() for label in labels]

    def active_keys(self) -> list[str]:
        return [k for k, v in self._selected.items() if v]

    def __bool__(self) -> bool:
        return any(self._selected.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, FilterSelection):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return f"FilterSelection({self.as_dict()!r})"
