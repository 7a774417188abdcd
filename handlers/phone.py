"""Подтверждение телефона через отправку контакта."""

from aiogram import F, Router
from aiogram.types import Message

from database.db import async_session_maker
from database import crud
from database.models import User
from keyboards.inline import get_webapp_keyboard
from keyboards.reply import get_contact_keyboard, remove_keyboard
from utils.logger import logger


router = Router(name="phone")


def normalize_phone(phone: str) -> str:
    """+7XXXXXXXXXX; российский префикс 8 заменяется на 7."""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) == 11 and digits.startswith("8"):
        digits = "7" + digits[1:]
    return f"+{digits}" if digits else phone


@router.message(F.contact)
async def handle_contact(message: Message, db_user: User) -> None:
    """Принимаем только собственный контакт отправителя."""
    contact = message.contact

    if contact.user_id != message.from_user.id:
        logger.warning(f"User {db_user.id} sent a foreign contact")
        await message.answer(
            "❌ Нужно отправить свой номер. Нажмите кнопку ниже.",
            reply_markup=get_contact_keyboard()
        )
        return

    phone = normalize_phone(contact.phone_number)
    async with async_session_maker() as session:
        user = await crud.set_user_phone(session, message.from_user.id, phone)

    if not user:
        await message.answer("⚠️ Пользователь не найден. Нажмите /start.")
        return

    await message.answer("✅ Номер телефона подтверждён.", reply_markup=remove_keyboard())
    await message.answer(
        "Можно продолжить бронирование в приложении.",
        reply_markup=get_webapp_keyboard()
    )
