# web/main.py — FastAPI приложение маркетплейса
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config import settings
from database.session import dispose_engine, init_db
from filters.taxonomy import get_taxonomy
from middlewares.error_handler import register_error_handlers
from middlewares.request_context import RequestContextMiddleware
from utils.logging_config import setup_logging
from web.routes import (
    filters_router,
    health_router,
    messages_router,
    profiles_router,
    registration_router,
    search_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Таксономия проверяется при старте: ошибка в JSON не даст поднять сервис
    get_taxonomy()
    await init_db()
    logger.info("RealtyNet API started")
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    app = FastAPI(title="RealtyNet API", lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(registration_router, prefix="/api/registration", tags=["registration"])
    app.include_router(filters_router, prefix="/api/filters", tags=["filters"])
    app.include_router(search_router, prefix="/api", tags=["search"])
    app.include_router(profiles_router, prefix="/api/profiles", tags=["profiles"])
    app.include_router(messages_router, prefix="/api/messages", tags=["messages"])
    return app


app = create_app()
