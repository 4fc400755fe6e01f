# database/session.py — асинхронная сессия SQLAlchemy
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from config import settings
from database.models import Base, PspType

logger = logging.getLogger(__name__)

# Ленивая инициализация engine (создается только при первом использовании)
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Получить или создать async engine (ленивая инициализация)."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.DATABASE_URL)
    return _engine


def create_engine_for(url: str) -> AsyncEngine:
    """Engine с параметрами пула по типу БД."""
    if "sqlite" in url:
        # Для SQLite не используем pool_size и max_overflow
        return create_async_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            pool_pre_ping=False,
        )
    # Для PostgreSQL и других БД используем настройки пула
    return create_async_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
    )


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_session_maker() -> async_sessionmaker:
    """Получить или создать async_sessionmaker (ленивая инициализация)."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = make_session_maker(get_engine())
    return _async_session_maker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Генератор сессии для внедрения в хендлеры (dependency)."""
    session_maker = get_async_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def seed_psp_types(session: AsyncSession) -> int:
    """Справочник типов PSP из корневой категории psp таксономии фильтров. Возвращает число добавленных."""
    from filters.taxonomy import get_taxonomy

    taxonomy = get_taxonomy()
    if "psp" not in taxonomy:
        return 0
    labels = [o.label for o in taxonomy.category("psp").options]
    existing = set((await session.execute(select(PspType.label))).scalars().all())
    added = 0
    for order, label in enumerate(labels):
        if label not in existing:
            session.add(PspType(label=label, sort_order=order))
            added += 1
    if added:
        await session.commit()
        logger.info(f"Seeded {added} psp types")
    return added


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Создание недостающих таблиц при старте и заполнение справочников."""
    engine_instance = engine or get_engine()
    async with engine_instance.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with make_session_maker(engine_instance)() as session:
        await seed_psp_types(session)


async def dispose_engine() -> None:
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_maker = None
