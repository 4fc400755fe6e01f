# web/routes/profiles.py — карточка профессионала и отзывы
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from middlewares.rate_limiter import write_rate_limiter
from services.context import AuthContext
from services.profile_service import ProfileService
from services.review_service import ReviewService
from web.auth import get_auth_context

router = APIRouter()


class ReviewIn(BaseModel):
    # Типы не сужаем: проверка значений в validate_review, с сообщениями для полей
    rating: Any = None
    comment: Any = None


@router.get("/{profile_id}")
async def get_profile(profile_id: str, session: AsyncSession = Depends(get_session)):
    return await ProfileService.get_profile(session, profile_id)


@router.post("/{profile_id}/reviews", status_code=201, dependencies=[Depends(write_rate_limiter)])
async def post_review(
    profile_id: str,
    body: ReviewIn,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    review = await ReviewService.create_review(session, auth, profile_id, body.rating, body.comment)
    await session.commit()
    return {
        "id": review.id,
        "profile_id": review.profile_id,
        "reviewer_id": review.reviewer_id,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": review.created_at,
    }
