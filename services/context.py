# services/context.py — контекст авторизованного пользователя
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Registrant:
    """Личность от провайдера авторизации. Этот код её не изменяет."""

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class AuthContext:
    """Явно передаваемый в сервисы контекст запроса вместо глобального "текущего пользователя"."""

    registrant: Registrant
    token: str = ""

    @property
    def user_id(self) -> str:
        return self.registrant.id
