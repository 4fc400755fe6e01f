# web/routes/filters.py — таксономия фильтров и переключение вариантов
from fastapi import APIRouter
from pydantic import BaseModel, Field

from filters.selection import FilterSelection
from filters.taxonomy import get_taxonomy

router = APIRouter()


class ToggleRequest(BaseModel):
    selection: dict[str, list[str]] = Field(default_factory=dict)
    category: str
    option: str


@router.get("/taxonomy")
async def taxonomy():
    return get_taxonomy().to_dict()


@router.post("/toggle")
async def toggle(body: ToggleRequest):
    """Новый выбор после переключения; снятие варианта очищает вложенные категории."""
    taxonomy = get_taxonomy()
    selection = FilterSelection(taxonomy, body.selection).toggle(body.category, body.option)
    return {
        "selection": selection.as_dict(),
        "visible": [key for key in taxonomy.keys() if selection.is_visible(key)],
        "query": selection.to_query(),
    }
