# web/routes/registration.py — API мастера регистрации исполнителя
import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database.session import get_session
from services.context import AuthContext
from services.errors import NotFoundError, ValidationFailed
from services.profile_service import ProfileService
from services.wizard_service import WizardSession
from utils.validators import FieldFailure, toggle_payment_method
from web.auth import get_auth_context

logger = logging.getLogger(__name__)

router = APIRouter()


class StepValues(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)


class PaymentToggle(BaseModel):
    selected: list[str] = Field(default_factory=list)
    method: str


async def _load_at(session: AsyncSession, auth: AuthContext, step_key: str) -> WizardSession:
    wizard = await WizardSession.load(session, auth.registrant)
    try:
        wizard.position(step_key)
    except KeyError:
        raise NotFoundError(f"Unknown registration step: {step_key}", operation="position") from None
    return wizard


@router.get("")
async def resume_registration(
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    """Текущий шаг (первый незавершённый), карта завершённости и сохранённые значения."""
    wizard = await WizardSession.load(session, auth.registrant)
    await session.commit()
    return wizard.snapshot()


@router.put("/steps/{step_key}")
async def edit_step(
    step_key: str,
    body: StepValues,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    """Правка полей шага: черновик сохраняется, ошибки возвращаются для показа у полей."""
    wizard = await _load_at(session, auth, step_key)
    result = await wizard.edit(body.values)
    await session.commit()
    return {
        "step": step_key,
        "valid": result.ok,
        "errors": [f.as_dict() for f in result.failures],
        "warnings": result.warnings,
        "values": result.values,
    }


@router.post("/steps/{step_key}/advance")
async def advance_step(
    step_key: str,
    body: StepValues,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    wizard = await _load_at(session, auth, step_key)
    outcome = await wizard.advance(body.values)
    await session.commit()
    ProfileService.invalidate(auth.user_id)
    return {
        **wizard.snapshot(),
        "submitted": outcome.submitted,
        "registration_status": outcome.registration_status,
        "warnings": outcome.warnings,
    }


@router.post("/steps/{step_key}/retreat")
async def retreat_step(
    step_key: str,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    """Шаг назад без проверки полей."""
    wizard = await _load_at(session, auth, step_key)
    wizard.retreat()
    await session.commit()
    return wizard.snapshot()


@router.post("/payment-methods/toggle")
async def toggle_payment(
    body: PaymentToggle,
    auth: AuthContext = Depends(get_auth_context),
):
    """Переключение способа оплаты: пустой набор заменяется способом по умолчанию с предупреждением."""
    if body.method not in settings.PAYMENT_METHODS:
        raise ValidationFailed(
            [FieldFailure("method", f"Payment method must be one of {', '.join(settings.PAYMENT_METHODS)}")]
        )
    methods, warning = toggle_payment_method(body.selected, body.method)
    return {"payment_methods": methods, "warnings": [warning] if warning else []}
