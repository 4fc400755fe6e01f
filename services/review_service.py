# services/review_service.py — отзывы о профессионалах
import logging
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database.models import Profile, Review
from services.context import AuthContext
from services.errors import ConflictError, NotFoundError, StoreError, ValidationFailed
from services.registration_store import db_error_message
from utils.cache import get_cache
from utils.validators import FieldFailure, FieldSpec, ValidationResult, validate_fields

logger = logging.getLogger(__name__)

DUPLICATE_REVIEW = "You've already reviewed this professional"

REVIEW_FIELDS = (
    FieldSpec("rating", "Rating", kind="int", min_value=1, max_value=5),
    FieldSpec(
        "comment",
        "Comment",
        min_length=settings.REVIEW_MIN_COMMENT_LENGTH,
        max_length=2000,
    ),
)


def profile_cache_key(profile_id: str) -> str:
    return f"profile:{profile_id}"


def validate_review(rating, comment) -> ValidationResult:
    """Локальная проверка отзыва, без обращения к БД."""
    return validate_fields(REVIEW_FIELDS, {"rating": rating, "comment": comment})


class ReviewService:
    """Отзывы: один на пару (профиль, автор), после отправки не меняются."""

    @staticmethod
    async def create_review(
        session: AsyncSession,
        auth: AuthContext,
        profile_id: str,
        rating,
        comment,
    ) -> Review:
        result = validate_review(rating, comment)
        if not result.ok:
            raise ValidationFailed(result.failures)
        if profile_id == auth.user_id:
            raise ValidationFailed([FieldFailure("profile_id", "You can't review your own profile")])

        try:
            profile = await session.get(Profile, profile_id)
            if profile is None:
                raise NotFoundError("Professional not found", operation="create_review")
            existing = await session.scalar(
                select(Review.id).where(
                    Review.profile_id == profile_id,
                    Review.reviewer_id == auth.user_id,
                )
            )
            if existing is not None:
                raise ConflictError(DUPLICATE_REVIEW, operation="create_review")

            review = Review(
                profile_id=profile_id,
                reviewer_id=auth.user_id,
                rating=result.values["rating"],
                comment=result.values["comment"],
            )
            session.add(review)
            await session.flush()
        except IntegrityError as e:
            await session.rollback()
            raise ConflictError(DUPLICATE_REVIEW, operation="create_review") from e
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Error creating review for {profile_id}: {db_error_message(e)}")
            raise StoreError(db_error_message(e), operation="create_review") from e

        get_cache().delete(profile_cache_key(profile_id))
        logger.info(f"Review {review.id} ({review.rating}/5) posted for {profile_id} by {auth.user_id}")
        return review

    @staticmethod
    async def list_reviews(session: AsyncSession, profile_id: str) -> list[dict]:
        """Отзывы профиля (новые сверху) с именами авторов."""
        reviews = (
            await session.execute(
                select(Review).where(Review.profile_id == profile_id).order_by(Review.created_at.desc(), Review.id.desc())
            )
        ).scalars().all()
        reviewer_ids = {r.reviewer_id for r in reviews}
        names = {}
        if reviewer_ids:
            rows = await session.execute(select(Profile.id, Profile.full_name).where(Profile.id.in_(reviewer_ids)))
            names = {pid: name for pid, name in rows.all()}
        return [
            {
                "id": r.id,
                "rating": r.rating,
                "comment": r.comment,
                "created_at": r.created_at,
                "reviewer_id": r.reviewer_id,
                "reviewer": {"full_name": names.get(r.reviewer_id) or "Anonymous"},
            }
            for r in reviews
        ]

    @staticmethod
    async def rating_stats(
        session: AsyncSession,
        profile_ids: Optional[Iterable[str]] = None,
    ) -> dict[str, tuple[float, int]]:
        """Средняя оценка (до 0.1) и число отзывов по профилям."""
        query = select(Review.profile_id, func.avg(Review.rating), func.count(Review.id)).group_by(Review.profile_id)
        if profile_ids is not None:
            ids = list(profile_ids)
            if not ids:
                return {}
            query = query.where(Review.profile_id.in_(ids))
        rows = await session.execute(query)
        return {pid: (round(float(avg), 1), int(count)) for pid, avg, count in rows.all()}
