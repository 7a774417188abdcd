"""Зависимости FastAPI: сессия БД, текущий пользователь, проверка прав админа."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.db import get_session
from database.models import User
from services.exceptions import AuthError, ForbiddenError
from services.telegram_auth import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


async def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db),
) -> User:
    if not creds or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise AuthError("Missing Bearer token")

    user_id = decode_access_token(creds.credentials)
    user = await crud.get_user(session, user_id)
    if not user:
        raise AuthError("User not found")

    request.state.user_id = user.id
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
