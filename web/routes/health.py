# web/routes/health.py — health check endpoints
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from filters.taxonomy import get_taxonomy

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_db(session: AsyncSession) -> str:
    try:
        await session.execute(text("SELECT 1"))
        return "ok"
    except SQLAlchemyError as e:
        logger.warning(f"Health check: database unavailable: {e}")
        return f"error: {e}"


@router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """Проверка состояния системы."""
    db_status = await _check_db(session)
    return JSONResponse({
        "status": "ok" if db_status == "ok" else "degraded",
        "database": db_status,
        "filter_categories": len(get_taxonomy().keys()),
        "service": "realtynet",
    })


@router.get("/health/live")
async def liveness_check():
    """Liveness probe для Kubernetes/Docker."""
    return JSONResponse({"status": "alive"})


@router.get("/health/ready")
async def readiness_check(session: AsyncSession = Depends(get_session)):
    """Readiness probe для Kubernetes/Docker."""
    if await _check_db(session) == "ok":
        return JSONResponse({"status": "ready"})
    return JSONResponse({"status": "not_ready"}, status_code=503)
