# alembic/env.py — окружение миграций маркетплейса (синхронный драйвер поверх async URL)
from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection, make_url
from alembic import context

from config import settings
from database.models import Base

ASYNC_DRIVERS = ("asyncpg", "aiosqlite")

config = context.config


def sync_url(url: str) -> str:
    """postgresql+asyncpg://... -> postgresql://...; sqlite+aiosqlite:///... -> sqlite:///..."""
    parsed = make_url(url)
    if parsed.drivername.partition("+")[2] in ASYNC_DRIVERS:
        parsed = parsed.set(drivername=parsed.get_backend_name())
    return parsed.render_as_string(hide_password=False)


if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", sync_url(settings.DATABASE_URL))

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    # render_as_batch: ALTER для SQLite через пересоздание таблицы
    context.configure(target_metadata=target_metadata, render_as_batch=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Генерация SQL без подключения к БД."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection)


def run_migrations_online() -> None:
    """Миграции на живом подключении; тесты могут передать своё через config.attributes."""
    connection = config.attributes.get("connection")
    if connection is not None:
        do_run_migrations(connection)
        return
    url = config.get_main_option("sqlalchemy.url")
    connect_args = {"timeout": 20.0, "check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, poolclass=pool.NullPool, connect_args=connect_args)
    with engine.connect() as conn:
        do_run_migrations(conn)
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
