# filters — таксономия фильтров поиска и модель выбора
from filters.taxonomy import Taxonomy, get_taxonomy, load_taxonomy
from filters.selection import FilterSelection

__all__ = ["Taxonomy", "get_taxonomy", "load_taxonomy", "FilterSelection"]
