# services/resume_service.py — определение шага, с которого продолжить регистрацию
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    BusinessInfo,
    IdentityDocument,
    LicenseCredential,
    PaymentPreference,
    PreferenceRanking,
    Profile,
)
from services.context import Registrant
from services.errors import StoreError
from services.registration_store import RegistrationStore, db_error_message
from states.registration import SERVICE_PROVIDER_STEPS, WizardStep

logger = logging.getLogger(__name__)

Evidence = Callable[[AsyncSession, str], Awaitable[bool]]


async def _has_row(session: AsyncSession, model, user_id: str) -> bool:
    return bool(await session.scalar(select(exists().where(model.user_id == user_id))))


async def _identity_done(session: AsyncSession, user_id: str) -> bool:
    return await _has_row(session, IdentityDocument, user_id)


async def _personal_done(session: AsyncSession, user_id: str) -> bool:
    profile = await session.get(Profile, user_id)
    if profile is None:
        return False
    return all((profile.user_type, profile.full_name, profile.email, profile.phone))


async def _business_done(session: AsyncSession, user_id: str) -> bool:
    return await _has_row(session, BusinessInfo, user_id)


async def _licenses_done(session: AsyncSession, user_id: str) -> bool:
    return await _has_row(session, LicenseCredential, user_id)


async def _rankings_done(session: AsyncSession, user_id: str) -> bool:
    return await _has_row(session, PreferenceRanking, user_id)


async def _payment_done(session: AsyncSession, user_id: str) -> bool:
    return await _has_row(session, PaymentPreference, user_id)


async def _legal_done(session: AsyncSession, user_id: str) -> bool:
    profile = await session.get(Profile, user_id)
    return profile is not None and profile.registration_status is not None


# Признак завершения по собственным записям шага; insurance только по отметке StepState
STEP_EVIDENCE: dict[str, Evidence] = {
    "identity": _identity_done,
    "personal": _personal_done,
    "business": _business_done,
    "licenses": _licenses_done,
    "rankings": _rankings_done,
    "payment": _payment_done,
    "legal": _legal_done,
}


class ResumeLocator:
    """
    Первый незавершённый шаг пользователя.

    Шаг завершён, если в StepState стоит отметка или есть его собственные
    записи. Отметки не удаляются, поэтому результат не откатывается назад.
    """

    def __init__(
        self,
        session: AsyncSession,
        registrant: Registrant,
        steps: tuple[WizardStep, ...] = SERVICE_PROVIDER_STEPS,
    ):
        self.session = session
        self.registrant = registrant
        self.steps = steps
        self.store = RegistrationStore(session, registrant)

    async def completion(self) -> list[bool]:
        """Битовая карта завершённости по шагам."""
        states = await self.store.load_states()
        bitmap = []
        try:
            for step in self.steps:
                state = states.get(step.key)
                if state is not None and state.completed:
                    bitmap.append(True)
                    continue
                evidence = STEP_EVIDENCE.get(step.key)
                bitmap.append(bool(evidence) and await evidence(self.session, self.registrant.id))
        except SQLAlchemyError as e:
            raise StoreError(db_error_message(e), operation="resume") from e
        return bitmap

    async def locate_first_incomplete(self, bitmap: Optional[list[bool]] = None) -> int:
        """Индекс (с 0) первого незавершённого шага, если завершены все, то последний шаг."""
        if bitmap is None:
            bitmap = await self.completion()
        index = next((i for i, done in enumerate(bitmap) if not done), len(self.steps) - 1)
        await self.store.touch_step(self.steps[index].key)
        logger.info(f"Registrant {self.registrant.id} resumes at step {index + 1} ({self.steps[index].key})")
        return index
