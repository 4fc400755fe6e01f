# services/registration_store.py — сохранение шагов мастера регистрации
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    BondInsurance,
    BusinessInfo,
    ESignature,
    IdentityDocument,
    LicenseCredential,
    PaymentPreference,
    PreferenceRanking,
    Profile,
    RegistrationStep,
    ServiceArea,
    UserType,
)
from services.context import Registrant
from services.errors import ConflictError, StoreError
from states.registration import WizardStep
from utils.validators import to_storable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def db_error_message(exc: SQLAlchemyError) -> str:
    """Текст ошибки драйвера БД без обёртки SQLAlchemy."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class RegistrationStore:
    """
    Сохранение шагов регистрации для одного пользователя.

    Одиночные записи (profiles, business_info, payment_preferences): upsert
    по пользователю. Повторяющиеся записи (документы, зоны обслуживания,
    ранги): удалить всё и вставить заново в одной транзакции: повторное
    сохранение того же набора не даёт дублей. Параллельные сессии одного
    пользователя не поддерживаются.

    Ошибки БД не повторяются: откат и StoreError с текстом драйвера.
    Коммит делает вызывающий код (обработчик запроса).
    """

    def __init__(self, session: AsyncSession, registrant: Registrant):
        self.session = session
        self.registrant = registrant
        self._savers = {
            "identity_documents": self._save_identity_documents,
            "profiles": self._save_personal,
            "business_info": self._save_business_info,
            "licenses_credentials": self._save_licenses,
            "bonds_insurance": self._save_bonds_insurance,
            "preference_rankings": self._save_rankings,
            "payment_preferences": self._save_payment_preferences,
            "e_signatures": self._save_signatures,
        }

    @property
    def user_id(self) -> str:
        return self.registrant.id

    @asynccontextmanager
    async def guard(self, operation: str):
        try:
            yield
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.error(f"Integrity error on {operation} for {self.user_id}: {db_error_message(e)}")
            raise ConflictError(db_error_message(e), operation=operation) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Store error on {operation} for {self.user_id}: {db_error_message(e)}")
            raise StoreError(db_error_message(e), operation=operation) from e

    # --- публичный интерфейс ---

    async def save(self, step: WizardStep, values: dict) -> None:
        """Сохранить проверенные значения шага и отметить шаг завершённым."""
        saver = self._savers.get(step.target)
        if saver is None:
            raise ValueError(f"Нет обработчика сохранения для {step.target}")
        async with self.guard(f"save:{step.key}"):
            await self.ensure_profile()
            await saver(values)
            await self._upsert_step_state(step.key, values, completed=True)
        logger.info(f"Registration step {step.key} saved for {self.user_id}")

    async def save_draft(self, step: WizardStep, values: dict) -> RegistrationStep:
        """Черновик: значения полей без изменения флага завершения."""
        async with self.guard(f"draft:{step.key}"):
            await self.ensure_profile()
            state = await self._upsert_step_state(step.key, values, completed=None)
        return state

    async def touch_step(self, step_key: str) -> RegistrationStep:
        """Создать StepState при первом попадании пользователя на шаг."""
        async with self.guard(f"touch:{step_key}"):
            await self.ensure_profile()
            state = await self._get_step_state(step_key)
            if state is None:
                state = RegistrationStep(user_id=self.user_id, step_key=step_key, completed=False, field_values={})
                self.session.add(state)
        return state

    async def load_states(self) -> dict[str, RegistrationStep]:
        try:
            result = await self.session.execute(
                select(RegistrationStep).where(RegistrationStep.user_id == self.user_id)
            )
        except SQLAlchemyError as e:
            raise StoreError(db_error_message(e), operation="load_states") from e
        return {s.step_key: s for s in result.scalars().all()}

    async def get_profile(self) -> Optional[Profile]:
        return await self.session.get(Profile, self.user_id)

    async def ensure_profile(self) -> Profile:
        """Базовая запись profiles для пользователя из данных провайдера авторизации."""
        profile = await self.session.get(Profile, self.user_id)
        if profile is None:
            profile = Profile(
                id=self.user_id,
                email=self.registrant.email,
                full_name=self.registrant.display_name,
            )
            self.session.add(profile)
            await self.session.flush()
            logger.info(f"Profile created for registrant {self.user_id}")
        return profile

    # --- внутреннее ---

    async def _get_step_state(self, step_key: str) -> Optional[RegistrationStep]:
        result = await self.session.execute(
            select(RegistrationStep).where(
                RegistrationStep.user_id == self.user_id,
                RegistrationStep.step_key == step_key,
            )
        )
        return result.scalar_one_or_none()

    async def _upsert_step_state(
        self,
        step_key: str,
        values: Optional[dict],
        completed: Optional[bool],
    ) -> RegistrationStep:
        state = await self._get_step_state(step_key)
        if state is None:
            state = RegistrationStep(user_id=self.user_id, step_key=step_key, completed=False)
            self.session.add(state)
        if values is not None:
            state.field_values = to_storable(values)
        # Флаг завершения только ставится: отметка не снимается повторным черновиком
        if completed and not state.completed:
            state.completed = True
            state.completed_at = _utcnow()
        state.updated_at = _utcnow()
        return state

    async def _replace(self, model, rows: list) -> None:
        """Удалить все записи пользователя в таблице и вставить новый набор."""
        await self.session.execute(delete(model).where(model.user_id == self.user_id))
        self.session.add_all(rows)

    async def _save_identity_documents(self, values: dict) -> None:
        rows = [
            IdentityDocument(
                user_id=self.user_id,
                document_type="state_id",
                country=values["id_country"],
                state=values.get("id_state"),
                number=values["id_number"],
                file_url=url,
            )
            for url in values["files"]
        ]
        await self._replace(IdentityDocument, rows)

    async def _save_personal(self, values: dict) -> None:
        profile = await self.ensure_profile()
        profile.first_name = values["first_name"]
        profile.last_name = values["last_name"]
        profile.full_name = f"{values['first_name']} {values['last_name']}"
        profile.birthday = values["birthday"]
        profile.phone = values["phone"]
        profile.email = values["email"]
        profile.mailing_address = values["mailing_address"]
        profile.languages = values.get("languages") or ["English"]
        profile.tools_technologies = values.get("tools_technologies") or []
        profile.user_type = UserType.SERVICE_PROVIDER.value

    async def _save_business_info(self, values: dict) -> None:
        result = await self.session.execute(select(BusinessInfo).where(BusinessInfo.user_id == self.user_id))
        info = result.scalar_one_or_none()
        if info is None:
            info = BusinessInfo(user_id=self.user_id)
            self.session.add(info)
        info.company_name = values.get("company_name")
        info.years_of_experience = values.get("years_of_experience")
        info.business_address = values.get("business_address")
        info.business_hours = values.get("business_hours")
        info.best_times_to_reach = values.get("best_times_to_reach")
        info.number_of_employees = values.get("number_of_employees")
        if values.get("years_of_experience") is not None:
            profile = await self.ensure_profile()
            profile.years_of_experience = values["years_of_experience"]
        areas = [
            ServiceArea(user_id=self.user_id, zip_code=a["zip_code"], radius_miles=a["radius_miles"])
            for a in values.get("service_areas") or []
        ]
        await self._replace(ServiceArea, areas)

    async def _save_licenses(self, values: dict) -> None:
        files = values.get("files") or [None]
        rows = [
            LicenseCredential(
                user_id=self.user_id,
                document_type="license",
                country=values["license_country"],
                state=values.get("license_state"),
                number=values["license_number"],
                active_since=values.get("active_since"),
                renewal_date=values.get("renewal_date"),
                expiration_date=values.get("expiration_date"),
                file_url=url,
            )
            for url in files
        ]
        await self._replace(LicenseCredential, rows)

    async def _save_bonds_insurance(self, values: dict) -> None:
        rows = [
            BondInsurance(user_id=self.user_id, document_type="insurance_eo", file_url=url)
            for url in values.get("files") or []
        ]
        await self._replace(BondInsurance, rows)

    async def _save_rankings(self, values: dict) -> None:
        rows = [
            PreferenceRanking(user_id=self.user_id, category=category, ranking=rank)
            for category, rank in values["rankings"].items()
        ]
        await self._replace(PreferenceRanking, rows)

    async def _save_payment_preferences(self, values: dict) -> None:
        methods = values.get("payment_methods") or []
        result = await self.session.execute(
            select(PaymentPreference).where(PaymentPreference.user_id == self.user_id)
        )
        prefs = result.scalar_one_or_none()
        if prefs is None:
            prefs = PaymentPreference(user_id=self.user_id)
            self.session.add(prefs)
        prefs.payment_packet = values.get("payment_packet")
        prefs.accepts_cash = "cash" in methods
        prefs.accepts_credit = "credit" in methods
        prefs.payment_terms = values.get("payment_terms")
        if values.get("tier_package"):
            profile = await self.ensure_profile()
            profile.tier_package = values["tier_package"]

    async def _save_signatures(self, values: dict) -> None:
        """Upsert по (пользователь, тип документа): повторная подпись перезаписывает прежнюю."""
        for doc_type, entry in values["signatures"].items():
            result = await self.session.execute(
                select(ESignature).where(
                    ESignature.user_id == self.user_id,
                    ESignature.document_type == doc_type,
                )
            )
            signature = result.scalar_one_or_none()
            if signature is None:
                signature = ESignature(user_id=self.user_id, document_type=doc_type)
                self.session.add(signature)
            signature.signature_data = entry["signature_data"]
            signature.name_printed = entry["name_printed"]
            signature.name_signed = entry["name_signed"]
            signature.signed_at = _utcnow()
