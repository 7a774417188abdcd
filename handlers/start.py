"""/start и /help."""

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from database.models import PhoneVerificationStatus, User
from keyboards.inline import get_main_menu_keyboard
from keyboards.reply import get_contact_keyboard
from utils.logger import logger


router = Router(name="start")

HELP_TEXT = (
    "🚛 <b>Аренда прицепов</b>\n\n"
    "1. Откройте приложение кнопкой ниже и выберите прицеп.\n"
    "2. Укажите время аренды и оплатите бронь.\n"
    "3. При получении прицепа блокируется залог, после возврата он снимается.\n\n"
    "Вопросы можно задать в разделе «Поддержка» приложения."
)


@router.message(CommandStart())
async def cmd_start(message: Message, db_user: User) -> None:
    """
    Handle /start command.

    Shows the Mini App menu. Users without a verified phone also get
    the contact-sharing keyboard.
    """
    logger.info(f"User {db_user.id} (tg={db_user.telegram_id}) started bot")

    await message.answer(
        f"👋 Привет, {db_user.first_name}!\n\n"
        f"Здесь можно арендовать прицеп на час или на несколько дней.",
        reply_markup=get_main_menu_keyboard(is_admin=db_user.is_admin)
    )

    if db_user.phone_verification_status != PhoneVerificationStatus.VERIFIED:
        await message.answer(
            "📱 Поделитесь номером телефона, чтобы мы могли связаться с вами по брони.",
            reply_markup=get_contact_keyboard()
        )


@router.message(Command("help"))
async def cmd_help(message: Message, db_user: User) -> None:
    await message.answer(HELP_TEXT, reply_markup=get_main_menu_keyboard(is_admin=db_user.is_admin))
