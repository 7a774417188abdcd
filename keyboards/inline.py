"""Inline keyboards: кнопки открытия Mini App."""

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton, WebAppInfo
from aiogram.utils.keyboard import InlineKeyboardBuilder

from config import settings


def get_webapp_keyboard(path: str = "", text: str = "🚛 Арендовать прицеп") -> InlineKeyboardMarkup:
    """
    Кнопка, открывающая Mini App.

    Args:
        path: Путь внутри приложения, например "/bookings"
        text: Текст кнопки
    """
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text=text,
            web_app=WebAppInfo(url=f"{settings.webapp_url}{path}")
        )
    )
    return builder.as_markup()


def get_main_menu_keyboard(is_admin: bool = False) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(
            text="🚛 Арендовать прицеп",
            web_app=WebAppInfo(url=settings.webapp_url)
        )
    )
    builder.row(
        InlineKeyboardButton(
            text="📋 Мои брони",
            web_app=WebAppInfo(url=f"{settings.webapp_url}/bookings")
        )
    )
    builder.row(
        InlineKeyboardButton(
            text="💬 Поддержка",
            web_app=WebAppInfo(url=f"{settings.webapp_url}/support")
        )
    )

    if is_admin:
        builder.row(
            InlineKeyboardButton(
                text="⚙️ Админка",
                web_app=WebAppInfo(url=f"{settings.webapp_url}/admin")
            )
        )

    return builder.as_markup()


def get_booking_keyboard(booking_id: int) -> InlineKeyboardMarkup:
    """Открыть конкретную бронь в Mini App."""
    return get_webapp_keyboard(f"/bookings/{booking_id}", text="📋 Открыть бронь")
