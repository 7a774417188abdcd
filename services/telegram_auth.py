"""Авторизация Mini App: проверка initData от Telegram и JWT-сессии."""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Any
from urllib.parse import parse_qsl

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import crud
from database.models import User
from services.exceptions import AuthError
from utils.helpers import now_utc
from utils.logger import logger


def _data_check_string(pairs: list[tuple[str, str]]) -> str:
    return "\n".join(f"{key}={value}" for key, value in sorted(pairs))


def _expected_hash(check_string: str, bot_token: str) -> str:
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()


def verify_init_data(raw: str, bot_token: str) -> bool:
    """
    Проверить подпись initData.

    Пары key=value без hash сортируются по ключу и склеиваются через "\\n";
    ключ подписи: HMAC-SHA256("WebAppData", bot_token).
    """
    if not raw or not bot_token:
        return False

    pairs = parse_qsl(raw, keep_blank_values=True)
    received = [value for key, value in pairs if key == "hash"]
    if not received:
        return False

    check_string = _data_check_string([(k, v) for k, v in pairs if k != "hash"])
    return hmac.compare_digest(_expected_hash(check_string, bot_token), received[-1])


def parse_init_data(
    raw: str,
    bot_token: str,
    max_age: int | None = None,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Проверить initData и вернуть данные пользователя Telegram.

    Raises:
        AuthError: подпись не сошлась, данные устарели или нет пользователя
    """
    if not verify_init_data(raw, bot_token):
        raise AuthError("Invalid initData signature")

    params = dict(parse_qsl(raw, keep_blank_values=True))
    max_age = settings.init_data_max_age_seconds if max_age is None else max_age
    now = time.time() if now is None else now

    try:
        auth_date = int(params.get("auth_date", ""))
    except ValueError:
        raise AuthError("initData has no auth_date") from None
    if now - auth_date > max_age:
        raise AuthError("initData expired")

    try:
        user_data = json.loads(params.get("user", ""))
    except json.JSONDecodeError:
        raise AuthError("initData has no user") from None
    if not isinstance(user_data, dict) or "id" not in user_data or not user_data.get("first_name"):
        raise AuthError("initData user is incomplete")

    return user_data


def create_access_token(user_id: int) -> str:
    expires_at = now_utc() + timedelta(days=settings.jwt_expire_days)
    payload = {"sub": str(user_id), "exp": expires_at}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int:
    """Вернуть id пользователя из токена. AuthError на любую ошибку."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise AuthError("Invalid or expired token") from None


async def authenticate_telegram(session: AsyncSession, raw: str) -> tuple[User, str]:
    """Проверить initData, найти или создать пользователя и выдать токен."""
    tg_user = parse_init_data(raw, settings.bot_token)
    telegram_id = int(tg_user["id"])

    user = await crud.get_user_by_telegram_id(session, telegram_id)
    if user is None:
        user = await crud.create_user(
            session,
            telegram_id=telegram_id,
            first_name=tg_user["first_name"],
            last_name=tg_user.get("last_name"),
            username=tg_user.get("username"),
            is_admin=telegram_id == settings.default_admin_id,
        )
    elif user.username != tg_user.get("username"):
        user = await crud.update_user(session, user.id, username=tg_user.get("username"))

    logger.info(f"User {user.id} authenticated via Telegram (tg={telegram_id})")
    return user, create_access_token(user.id)
