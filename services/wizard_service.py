# services/wizard_service.py — конечный автомат мастера регистрации
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from services.context import Registrant
from services.errors import StepBlocked
from services.finalizer import SubmissionFinalizer
from services.registration_store import RegistrationStore
from services.resume_service import ResumeLocator
from states.registration import SERVICE_PROVIDER_STEPS, WizardStep, step_index
from utils.validators import FieldFailure, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class AdvanceResult:
    step_index: int
    step_key: str
    submitted: bool = False
    registration_status: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


class WizardSession:
    """
    Линейный автомат по упорядоченному списку шагов.

    Состояние: индекс текущего шага, битовая карта завершённости и флаг
    однократного заполнения значений из сохранённых StepState.
    Вперёд можно только после успешной валидации и сохранения шага, назад
    всегда и без проверок. Перепрыгнуть через незавершённый шаг нельзя.
    """

    def __init__(
        self,
        session: AsyncSession,
        registrant: Registrant,
        steps: tuple[WizardStep, ...] = SERVICE_PROVIDER_STEPS,
    ):
        if not steps or not steps[-1].terminal:
            raise ValueError("Последний шаг мастера должен быть завершающим")
        self.session = session
        self.registrant = registrant
        self.steps = steps
        self.store = RegistrationStore(session, registrant)
        self.finalizer = SubmissionFinalizer(self.store)
        self.index = 0
        self.completion = [False] * len(steps)
        self.values: dict[str, dict] = {}
        self.prepopulated = False
        self.submitted = False

    @classmethod
    async def load(
        cls,
        session: AsyncSession,
        registrant: Registrant,
        steps: tuple[WizardStep, ...] = SERVICE_PROVIDER_STEPS,
    ) -> "WizardSession":
        """Восстановить мастер: позиция на первом незавершённом шаге, значения из StepState."""
        wizard = cls(session, registrant, steps)
        locator = ResumeLocator(session, registrant, steps)
        wizard.completion = await locator.completion()
        wizard.index = await locator.locate_first_incomplete(wizard.completion)
        profile = await wizard.store.get_profile()
        wizard.submitted = profile is not None and profile.registration_status is not None
        await wizard.prepopulate()
        return wizard

    async def prepopulate(self) -> bool:
        """Подставить сохранённые значения шагов. Выполняется не более одного раза за сессию."""
        if self.prepopulated:
            return False
        states = await self.store.load_states()
        for step in self.steps:
            state = states.get(step.key)
            if state is not None and state.field_values:
                self.values.setdefault(step.key, dict(state.field_values))
        self.prepopulated = True
        return True

    @property
    def current(self) -> WizardStep:
        return self.steps[self.index]

    @property
    def first_incomplete(self) -> int:
        return next((i for i, done in enumerate(self.completion) if not done), len(self.steps) - 1)

    def position(self, step_key: str) -> WizardStep:
        """
        Встать на шаг, все предыдущие шаги которого завершены (например,
        вернуться к своему курсору после retreat). Прочие переходы отклоняются.
        """
        target = step_index(step_key, self.steps)
        if target == self.index:
            return self.current
        if not all(self.completion[:target]):
            blocker = self.steps[self.first_incomplete]
            logger.warning(f"Registrant {self.registrant.id} tried to jump to {step_key}, blocked by {blocker.key}")
            raise StepBlocked(
                step_key,
                [FieldFailure("step", f"Please complete {blocker.title} first")],
            )
        self.index = target
        return self.current

    def validate(self, values: Optional[dict]) -> ValidationResult:
        return self.current.validate(values)

    async def edit(self, values: Optional[dict]) -> ValidationResult:
        """Правка полей: живая проверка и сохранение черновика без отметки завершения."""
        step = self.current
        result = step.validate(values)
        await self.store.save_draft(step, result.values)
        self.values[step.key] = dict(result.values)
        return result

    async def advance(self, values: Optional[dict]) -> AdvanceResult:
        step = self.current
        result = step.validate(values)
        if not result.ok:
            first = result.first_failure
            logger.info(f"Step {step.key} blocked for {self.registrant.id}: {first.field}: {first.reason}")
            raise StepBlocked(step.key, result.failures)

        if step.terminal:
            status = await self.finalizer.finalize(step, result.values)
            self.completion[self.index] = True
            self.values[step.key] = dict(result.values)
            self.submitted = True
            return AdvanceResult(
                step_index=self.index,
                step_key=step.key,
                submitted=True,
                registration_status=status,
                warnings=result.warnings,
            )

        await self.store.save(step, result.values)
        self.completion[self.index] = True
        self.values[step.key] = dict(result.values)
        self.index += 1
        await self.store.touch_step(self.current.key)
        return AdvanceResult(step_index=self.index, step_key=self.current.key, warnings=result.warnings)

    def retreat(self) -> WizardStep:
        """Шаг назад без проверок; на первом шаге остаётся на месте."""
        if self.index > 0:
            self.index -= 1
        return self.current

    def snapshot(self) -> dict:
        """Состояние мастера для ответа API (номера шагов с 1)."""
        return {
            "current_step": self.index + 1,
            "step_key": self.current.key,
            "total_steps": len(self.steps),
            "submitted": self.submitted,
            "completion": {s.key: done for s, done in zip(self.steps, self.completion)},
            "steps": [
                {
                    "number": i + 1,
                    "key": s.key,
                    "title": s.title,
                    "description": s.description,
                    "required_fields": s.required_fields,
                    "terminal": s.terminal,
                }
                for i, s in enumerate(self.steps)
            ],
            "values": self.values.get(self.current.key, {}),
        }
