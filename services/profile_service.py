# services/profile_service.py — карточка профессионала (собирается из нескольких таблиц)
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database.models import (
    Award,
    BusinessInfo,
    PaymentPreference,
    Profile,
    PspType,
    Service,
    ServiceArea,
    Skill,
    UserPspType,
    UserRole,
    UserSkill,
)
from services.errors import NotFoundError
from services.review_service import ReviewService, profile_cache_key
from utils.cache import get_cache

logger = logging.getLogger(__name__)

RELATED_PROFILES_LIMIT = 4


class ProfileService:
    """Сборка read-model профиля. Не хранится в БД, кэшируется на CACHE_TTL_PROFILE секунд."""

    @staticmethod
    async def get_profile(
        session: AsyncSession,
        profile_id: str,
        use_cache: bool = True,
    ) -> dict:
        """
        Карточка профессионала.

        Args:
            session: Сессия БД
            profile_id: ID профиля
            use_cache: Использовать ли кэш

        Returns:
            dict с профилем, ролями, зонами, оплатой, навыками, наградами,
            услугами, отзывами и средней оценкой

        Raises:
            NotFoundError: профиль не найден
        """
        cache = get_cache()
        cache_key = profile_cache_key(profile_id)
        if use_cache:
            cached_profile = cache.get(cache_key)
            if cached_profile is not None:
                return cached_profile

        profile = await session.get(Profile, profile_id)
        if profile is None:
            raise NotFoundError("Professional not found", operation="get_profile")

        view = await ProfileService._compose(session, profile)
        if use_cache and settings.CACHE_TTL_PROFILE > 0:
            cache.set(cache_key, view, ttl=settings.CACHE_TTL_PROFILE)
        return view

    @staticmethod
    async def _compose(session: AsyncSession, profile: Profile) -> dict:
        pid = profile.id
        roles = (await session.execute(select(UserRole.role).where(UserRole.user_id == pid))).scalars().all()
        areas = (
            await session.execute(
                select(ServiceArea.zip_code, ServiceArea.radius_miles)
                .where(ServiceArea.user_id == pid)
                .order_by(ServiceArea.id)
            )
        ).all()
        payment: Optional[PaymentPreference] = await session.scalar(
            select(PaymentPreference).where(PaymentPreference.user_id == pid)
        )
        business: Optional[BusinessInfo] = await session.scalar(
            select(BusinessInfo).where(BusinessInfo.user_id == pid)
        )
        psp_rows = (
            await session.execute(
                select(PspType.id, PspType.label)
                .join(UserPspType, UserPspType.psp_type_id == PspType.id)
                .where(UserPspType.user_id == pid)
                .order_by(PspType.sort_order)
            )
        ).all()
        skills = (
            await session.execute(
                select(Skill.label).join(UserSkill, UserSkill.skill_id == Skill.id).where(UserSkill.user_id == pid)
            )
        ).scalars().all()
        awards = (
            await session.execute(
                select(Award).where(Award.recipient_id == pid).order_by(Award.date_awarded.desc())
            )
        ).scalars().all()
        services = (
            await session.execute(select(Service).where(Service.provider_id == pid).order_by(Service.id))
        ).scalars().all()
        reviews = await ReviewService.list_reviews(session, pid)
        rating = round(sum(r["rating"] for r in reviews) / len(reviews), 1) if reviews else 0.0

        return {
            "id": pid,
            "full_name": profile.full_name,
            "email": profile.email,
            "phone": profile.phone,
            "avatar_url": profile.avatar_url,
            "bio": profile.bio,
            "full_address": profile.full_address,
            "user_type": profile.user_type,
            "registration_status": profile.registration_status,
            "tier_package": profile.tier_package,
            "languages": profile.languages or [],
            "tools_technologies": profile.tools_technologies or [],
            "hourly_rate": profile.hourly_rate,
            "referral_fee_percentage": profile.referral_fee_percentage,
            "price_per_sqft": profile.price_per_sqft,
            "company_name": business.company_name if business else None,
            "years_of_experience": (
                business.years_of_experience if business and business.years_of_experience is not None
                else profile.years_of_experience
            ),
            "user_roles": list(roles),
            "psp_labels": [label for _, label in psp_rows],
            "skills": list(skills),
            "service_areas": [{"zip_code": z, "radius_miles": r} for z, r in areas],
            "payment_preferences": (
                {
                    "payment_packet": payment.payment_packet,
                    "accepts_cash": payment.accepts_cash,
                    "accepts_credit": payment.accepts_credit,
                    "payment_terms": payment.payment_terms,
                }
                if payment
                else None
            ),
            "awards": [
                {"id": a.id, "title": a.title, "date_awarded": a.date_awarded, "description": a.description}
                for a in awards
            ],
            "services": [
                {
                    "id": s.id,
                    "title": s.title,
                    "category": s.category or "",
                    "price": s.price or 0,
                    "description": s.description,
                }
                for s in services
            ],
            "reviews": reviews,
            "rating": rating,
            "review_count": len(reviews),
            "related_profiles": await ProfileService._related(session, pid, [i for i, _ in psp_rows]),
        }

    @staticmethod
    async def _related(session: AsyncSession, profile_id: str, psp_type_ids: list[int]) -> list[dict]:
        """Профили с теми же типами PSP, без текущего, не больше четырёх."""
        if not psp_type_ids:
            return []
        rows = (
            await session.execute(
                select(Profile.id, Profile.full_name, Profile.avatar_url, Profile.hourly_rate)
                .join(UserPspType, UserPspType.user_id == Profile.id)
                .where(UserPspType.psp_type_id.in_(psp_type_ids), Profile.id != profile_id)
                .distinct()
                .order_by(Profile.id)
                .limit(RELATED_PROFILES_LIMIT)
            )
        ).all()
        stats = await ReviewService.rating_stats(session, [r.id for r in rows])
        return [
            {
                "id": r.id,
                "full_name": r.full_name,
                "avatar_url": r.avatar_url,
                "hourly_rate": r.hourly_rate,
                "rating": stats.get(r.id, (0.0, 0))[0],
                "reviews": stats.get(r.id, (0.0, 0))[1],
            }
            for r in rows
        ]

    @staticmethod
    def invalidate(profile_id: str) -> None:
        get_cache().delete(profile_cache_key(profile_id))
        logger.debug(f"Profile cache invalidated: {profile_id}")
