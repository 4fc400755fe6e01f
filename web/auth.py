# web/auth.py — проверка подписанного токена провайдера авторизации
import logging
from typing import Optional

from fastapi import Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import settings
from services.context import AuthContext, Registrant
from services.errors import NotAuthenticated
from utils.logging_config import update_log_context

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
TOKEN_SALT = "realtynet-identity"


def get_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.AUTH_SECRET_KEY, salt=TOKEN_SALT)


def issue_token(user_id: str, email: Optional[str] = None, display_name: Optional[str] = None) -> str:
    """Подписать токен с утверждениями id/email/display_name (так же, как это делает провайдер авторизации)."""
    return get_serializer().dumps({"id": user_id, "email": email, "display_name": display_name})


def verify_token(token: str) -> AuthContext:
    try:
        claims = get_serializer().loads(token, max_age=settings.AUTH_TOKEN_MAX_AGE)
    except SignatureExpired:
        raise NotAuthenticated("Your session has expired. Please sign in again") from None
    except BadSignature:
        logger.warning("Rejected identity token with bad signature")
        raise NotAuthenticated() from None
    if not isinstance(claims, dict) or not claims.get("id"):
        raise NotAuthenticated()
    registrant = Registrant(
        id=str(claims["id"]),
        email=claims.get("email"),
        display_name=claims.get("display_name"),
    )
    return AuthContext(registrant=registrant, token=token)


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def get_auth_context(request: Request) -> AuthContext:
    """Dependency: контекст пользователя из Bearer-заголовка или cookie session."""
    token = _token_from_request(request)
    if not token:
        raise NotAuthenticated()
    auth = verify_token(token)
    request.state.registrant_id = auth.user_id
    update_log_context(registrant=auth.user_id)
    return auth
