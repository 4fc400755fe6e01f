# services/message_service.py — личные сообщения между пользователями
import logging
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Message, Profile
from services.context import AuthContext
from services.errors import NotFoundError, StoreError, ValidationFailed
from services.registration_store import db_error_message
from utils.validators import FieldFailure, FieldSpec, validate_fields

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = (
    FieldSpec("recipient_id", "Recipient", max_length=64),
    FieldSpec("subject", "Subject", required=False, max_length=256),
    FieldSpec("content", "Message", max_length=5000),
)


def _participant(profile: Optional[Profile], user_id: str) -> dict:
    if profile is None:
        return {"id": user_id, "full_name": None, "email": None, "avatar_url": None}
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "avatar_url": profile.avatar_url,
    }


class MessageService:
    """Отправка, список, прочтение и счётчик непрочитанных."""

    @staticmethod
    async def send_message(
        session: AsyncSession,
        auth: AuthContext,
        recipient_id: str,
        content: str,
        subject: Optional[str] = None,
    ) -> Message:
        result = validate_fields(
            MESSAGE_FIELDS,
            {"recipient_id": recipient_id, "subject": subject, "content": content},
        )
        if not result.ok:
            raise ValidationFailed(result.failures)
        if result.values["recipient_id"] == auth.user_id:
            raise ValidationFailed([FieldFailure("recipient_id", "You can't message yourself")])
        try:
            recipient = await session.get(Profile, result.values["recipient_id"])
            if recipient is None:
                raise NotFoundError("Recipient not found", operation="send_message")
            message = Message(
                sender_id=auth.user_id,
                recipient_id=recipient.id,
                subject=result.values["subject"],
                content=result.values["content"],
                read=False,
            )
            session.add(message)
            await session.flush()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Error sending message from {auth.user_id}: {db_error_message(e)}")
            raise StoreError(db_error_message(e), operation="send_message") from e
        logger.info(f"Message {message.id} sent {auth.user_id} -> {recipient.id}")
        return message

    @staticmethod
    async def list_messages(session: AsyncSession, auth: AuthContext) -> list[dict]:
        """Входящие и исходящие, новые сверху, с данными участников."""
        messages = (
            await session.execute(
                select(Message)
                .where(or_(Message.sender_id == auth.user_id, Message.recipient_id == auth.user_id))
                .order_by(Message.created_at.desc(), Message.id.desc())
            )
        ).scalars().all()
        if not messages:
            return []
        participant_ids = {m.sender_id for m in messages} | {m.recipient_id for m in messages}
        profiles = {
            p.id: p
            for p in (await session.execute(select(Profile).where(Profile.id.in_(participant_ids)))).scalars().all()
        }
        return [
            {
                "id": m.id,
                "subject": m.subject,
                "content": m.content,
                "read": m.read,
                "created_at": m.created_at,
                "sender": _participant(profiles.get(m.sender_id), m.sender_id),
                "recipient": _participant(profiles.get(m.recipient_id), m.recipient_id),
                "incoming": m.recipient_id == auth.user_id,
            }
            for m in messages
        ]

    @staticmethod
    async def mark_read(session: AsyncSession, auth: AuthContext, message_ids: list[int]) -> int:
        """Отметить прочитанными; затрагиваются только сообщения, адресованные пользователю."""
        if not message_ids:
            return 0
        try:
            result = await session.execute(
                update(Message)
                .where(Message.id.in_(message_ids), Message.recipient_id == auth.user_id)
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            await session.rollback()
            raise StoreError(db_error_message(e), operation="mark_read") from e
        return result.rowcount or 0

    @staticmethod
    async def unread_count(session: AsyncSession, auth: AuthContext) -> int:
        count = await session.scalar(
            select(func.count(Message.id)).where(Message.recipient_id == auth.user_id, Message.read.is_(False))
        )
        return int(count or 0)
