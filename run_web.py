# run_web.py — запуск API: миграции Alembic, затем uvicorn
# Использование: python run_web.py  или  uvicorn web.main:app --host 0.0.0.0 --port 8000
import logging
from pathlib import Path

import uvicorn
from config import settings
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Миграции Alembic до head (синхронно, до создания async engine)."""
    from alembic.config import Config
    from alembic import command

    root = Path(__file__).resolve().parent
    alembic_cfg = Config(str(root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Migrations applied")


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    run_migrations()
    uvicorn.run(
        "web.main:app",
        host=settings.WEB_HOST,
        port=settings.WEB_PORT,
        reload=False,
    )
