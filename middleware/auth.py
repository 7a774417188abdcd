"""Middleware: регистрация пользователя бота в базе."""

from typing import Any, Awaitable, Callable

from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery, TelegramObject

from config import settings
from database.db import async_session_maker
from database import crud
from utils.logger import logger


class AuthMiddleware(BaseMiddleware):
    """
    Находит пользователя по Telegram ID или создаёт его.

    Хендлеры получают db_user. Бот открыт для всех: доступ к брони
    ограничивает проверка документов и телефона, а не белый список.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: dict[str, Any],
    ) -> Any:
        tg_user = None
        if isinstance(event, (Message, CallbackQuery)):
            tg_user = event.from_user

        if not tg_user or tg_user.is_bot:
            return await handler(event, data)

        try:
            async with async_session_maker() as session:
                db_user = await crud.get_user_by_telegram_id(session, tg_user.id)
                if db_user is None:
                    db_user = await crud.create_user(
                        session,
                        telegram_id=tg_user.id,
                        first_name=tg_user.first_name,
                        last_name=tg_user.last_name,
                        username=tg_user.username,
                        is_admin=tg_user.id == settings.default_admin_id,
                    )
        except Exception as e:
            logger.error(f"Auth middleware error: {e}")
            if isinstance(event, Message):
                await event.answer("⚠️ Сервис временно недоступен. Попробуйте позже.")
            elif isinstance(event, CallbackQuery):
                await event.answer("Сервис временно недоступен", show_alert=True)
            return None

        data["db_user"] = db_user
        return await handler(event, data)
