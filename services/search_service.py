# services/search_service.py — поиск профессионалов и услуг по выбранным фильтрам
import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database.models import (
    BusinessInfo,
    Profile,
    ProfileTag,
    PspType,
    Service,
    ServiceArea,
    Skill,
    UserPspType,
    UserRole,
    UserSkill,
)
from filters.selection import FilterSelection
from services.errors import StoreError, ValidationFailed
from services.geocoding import lookup_zip
from services.registration_store import db_error_message
from services.review_service import ReviewService
from utils.validators import FieldFailure

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("default", "rating", "price-low", "price-high")

# Категория, выбор в которой ищется через справочник psp_types
PSP_CATEGORY = "psp"


def _check_price(price_min: Optional[float], price_max: Optional[float]) -> tuple[float, float]:
    low = settings.PRICE_MIN if price_min is None else price_min
    high = settings.PRICE_MAX if price_max is None else price_max
    if low < 0:
        raise ValidationFailed([FieldFailure("price_min", "Minimum price cannot be negative")])
    if high < low:
        raise ValidationFailed([FieldFailure("price_max", "Maximum price must not be lower than minimum price")])
    return low, high


def _price_filtered(price_min: float, price_max: float) -> bool:
    """Ценовой фильтр применяется, только если границы сужены относительно значений по умолчанию."""
    return price_min > settings.PRICE_MIN or price_max < settings.PRICE_MAX


def _apply_tags(query: Select, user_column, selection: FilterSelection) -> Select:
    """Теговые категории: ИЛИ внутри категории, И между категориями."""
    for key in selection.active_keys():
        if key == PSP_CATEGORY:
            continue
        labels = selection.selected(key)
        query = query.where(
            user_column.in_(
                select(ProfileTag.user_id).where(ProfileTag.category == key, ProfileTag.label.in_(labels))
            )
        )
    return query


async def _labels_by_user(session: AsyncSession, query: Select) -> dict[str, list[str]]:
    out: dict[str, list[str]] = defaultdict(list)
    for user_id, label in (await session.execute(query)).all():
        out[user_id].append(label)
    return out


class SearchService:
    """Выдача для страниц browse/search: фильтры -> SQL-предикаты -> денормализованные карточки."""

    @staticmethod
    async def search_profiles(
        session: AsyncSession,
        selection: FilterSelection,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        sort: str = "default",
        limit: Optional[int] = None,
    ) -> list[dict]:
        if sort not in SORT_OPTIONS:
            raise ValidationFailed([FieldFailure("sort", f"Sort must be one of {', '.join(SORT_OPTIONS)}")])
        low, high = _check_price(price_min, price_max)
        limit = limit or settings.SEARCH_RESULT_LIMIT

        query = select(Profile)
        psp_labels = selection.selected(PSP_CATEGORY)
        if psp_labels:
            query = query.where(
                Profile.id.in_(
                    select(UserPspType.user_id)
                    .join(PspType, PspType.id == UserPspType.psp_type_id)
                    .where(PspType.label.in_(psp_labels))
                )
            )
        query = _apply_tags(query, Profile.id, selection)
        if _price_filtered(low, high):
            query = query.where(func.coalesce(Profile.hourly_rate, 0).between(low, high))
        if sort == "price-low":
            query = query.order_by(func.coalesce(Profile.hourly_rate, 0).asc(), Profile.id)
        elif sort == "price-high":
            query = query.order_by(func.coalesce(Profile.hourly_rate, 0).desc(), Profile.id)
        else:
            query = query.order_by(Profile.created_at.desc(), Profile.id)
        if sort != "rating":
            # рейтинг считается после загрузки, остальные сортировки ограничиваются в SQL
            query = query.limit(limit)

        try:
            profiles = (await session.execute(query)).scalars().all()
            listings = await SearchService._profile_listings(session, profiles)
        except SQLAlchemyError as e:
            logger.error(f"Profile search failed: {db_error_message(e)}")
            raise StoreError(db_error_message(e), operation="search_profiles") from e

        if sort == "rating":
            listings.sort(key=lambda item: (item["rating"], item["reviews"]), reverse=True)
        logger.debug(f"Profile search {selection.as_dict()} price={low}-{high} sort={sort}: {len(listings)} found")
        return listings[:limit]

    @staticmethod
    async def _profile_listings(session: AsyncSession, profiles) -> list[dict]:
        ids = [p.id for p in profiles]
        if not ids:
            return []
        roles = await _labels_by_user(session, select(UserRole.user_id, UserRole.role).where(UserRole.user_id.in_(ids)))
        psp = await _labels_by_user(
            session,
            select(UserPspType.user_id, PspType.label)
            .join(PspType, PspType.id == UserPspType.psp_type_id)
            .where(UserPspType.user_id.in_(ids))
            .order_by(PspType.sort_order),
        )
        skills = await _labels_by_user(
            session,
            select(UserSkill.user_id, Skill.label)
            .join(Skill, Skill.id == UserSkill.skill_id)
            .where(UserSkill.user_id.in_(ids)),
        )
        areas: dict[str, list[dict]] = defaultdict(list)
        area_rows = await session.execute(
            select(ServiceArea.user_id, ServiceArea.zip_code, ServiceArea.radius_miles)
            .where(ServiceArea.user_id.in_(ids))
            .order_by(ServiceArea.id)
        )
        for user_id, zip_code, radius in area_rows.all():
            coords = lookup_zip(zip_code)
            areas[user_id].append(
                {
                    "zip_code": zip_code,
                    "radius_miles": radius,
                    "lat": coords.lat if coords else None,
                    "lng": coords.lng if coords else None,
                }
            )
        companies = dict(
            (await session.execute(
                select(BusinessInfo.user_id, BusinessInfo.company_name).where(BusinessInfo.user_id.in_(ids))
            )).all()
        )
        stats = await ReviewService.rating_stats(session, ids)

        listings = []
        for profile in profiles:
            rating, count = stats.get(profile.id, (0.0, 0))
            user_areas = areas.get(profile.id, [])
            listings.append(
                {
                    "id": profile.id,
                    "title": companies.get(profile.id) or profile.full_name,
                    "provider": profile.full_name,
                    "avatar_url": profile.avatar_url,
                    "rating": rating,
                    "reviews": count,
                    "price": profile.hourly_rate or 0,
                    "referral_fee": (
                        f"{profile.referral_fee_percentage:g}%" if profile.referral_fee_percentage else None
                    ),
                    "price_per_sqft": profile.price_per_sqft,
                    "location": user_areas[0]["zip_code"] if user_areas else None,
                    # Типы PSP, иначе старые роли
                    "roles": psp.get(profile.id) or roles.get(profile.id, []),
                    "skills": skills.get(profile.id, []),
                    "service_areas": user_areas,
                }
            )
        return listings

    @staticmethod
    async def search_services(
        session: AsyncSession,
        selection: FilterSelection,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Услуги, новые сверху. Выбор psp фильтрует по категории услуги, остальные категории по тегам исполнителя."""
        low, high = _check_price(price_min, price_max)
        limit = limit or settings.SEARCH_RESULT_LIMIT

        query = (
            select(Service, Profile.full_name, Profile.avatar_url, BusinessInfo.company_name)
            .join(Profile, Profile.id == Service.provider_id)
            .outerjoin(BusinessInfo, BusinessInfo.user_id == Service.provider_id)
        )
        psp_labels = selection.selected(PSP_CATEGORY)
        if psp_labels:
            query = query.where(Service.category.in_(psp_labels))
        query = _apply_tags(query, Service.provider_id, selection)
        if _price_filtered(low, high):
            query = query.where(func.coalesce(Service.price, 0).between(low, high))
        query = query.order_by(Service.created_at.desc(), Service.id.desc()).limit(limit)

        try:
            rows = (await session.execute(query)).all()
            provider_ids = list({service.provider_id for service, *_ in rows})
            first_zip: dict[str, str] = {}
            if provider_ids:
                area_rows = await session.execute(
                    select(ServiceArea.user_id, ServiceArea.zip_code)
                    .where(ServiceArea.user_id.in_(provider_ids))
                    .order_by(ServiceArea.id)
                )
                for user_id, zip_code in area_rows.all():
                    first_zip.setdefault(user_id, zip_code)
        except SQLAlchemyError as e:
            logger.error(f"Service search failed: {db_error_message(e)}")
            raise StoreError(db_error_message(e), operation="search_services") from e

        return [
            {
                "id": service.id,
                "title": service.title,
                "category": service.category,
                "description": service.description or "Professional service offering",
                "price": service.price or 0,
                "provider_id": service.provider_id,
                "provider": {"full_name": full_name, "avatar_url": avatar_url, "company_name": company_name},
                "location": first_zip.get(service.provider_id),
            }
            for service, full_name, avatar_url, company_name in rows
        ]
