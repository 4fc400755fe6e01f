# web/routes/messages.py — сообщения пользователя
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.session import get_session
from middlewares.rate_limiter import write_rate_limiter
from services.context import AuthContext
from services.message_service import MessageService
from web.auth import get_auth_context

router = APIRouter()


class MessageIn(BaseModel):
    recipient_id: str
    content: str
    subject: Optional[str] = None


class MarkRead(BaseModel):
    message_ids: list[int] = Field(default_factory=list)


@router.get("")
async def list_messages(
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    return await MessageService.list_messages(session, auth)


@router.post("", status_code=201, dependencies=[Depends(write_rate_limiter)])
async def send_message(
    body: MessageIn,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    message = await MessageService.send_message(session, auth, body.recipient_id, body.content, body.subject)
    await session.commit()
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "subject": message.subject,
        "content": message.content,
        "read": message.read,
        "created_at": message.created_at,
    }


@router.post("/read")
async def mark_read(
    body: MarkRead,
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    updated = await MessageService.mark_read(session, auth, body.message_ids)
    await session.commit()
    return {"updated": updated}


@router.get("/unread-count")
async def unread_count(
    session: AsyncSession = Depends(get_session),
    auth: AuthContext = Depends(get_auth_context),
):
    return {"count": await MessageService.unread_count(session, auth)}
