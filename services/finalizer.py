# services/finalizer.py — завершение регистрации на последнем шаге
import logging
from datetime import datetime, timezone

from database.models import RegistrationStatus
from services.registration_store import RegistrationStore
from states.registration import WizardStep

logger = logging.getLogger(__name__)


class SubmissionFinalizer:
    """
    Сохраняет подписи (upsert по типу документа), ставит статус регистрации
    "pending" и отмечает последний шаг. Единственное место, где меняется
    registration_status.
    """

    def __init__(self, store: RegistrationStore):
        self.store = store

    async def finalize(self, step: WizardStep, values: dict) -> str:
        # save() сам отмечает шаг завершённым вместе с подписями
        await self.store.save(step, values)
        async with self.store.guard("finalize"):
            profile = await self.store.ensure_profile()
            profile.registration_status = RegistrationStatus.PENDING.value
            profile.submitted_at = datetime.now(timezone.utc)
        logger.info(f"Registration submitted by {self.store.user_id}")
        return profile.registration_status
