# web/routes — роуты HTTP API
from web.routes.health import router as health_router
from web.routes.registration import router as registration_router
from web.routes.filters import router as filters_router
from web.routes.search import router as search_router
from web.routes.profiles import router as profiles_router
from web.routes.messages import router as messages_router

__all__ = [
    "health_router",
    "registration_router",
    "filters_router",
    "search_router",
    "profiles_router",
    "messages_router",
]
