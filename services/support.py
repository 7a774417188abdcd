"""Чат поддержки: пользовательская и админская стороны."""

from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.models import ChatPriority, ChatStatus, SenderType, SupportChat, SupportMessage, User
from services.exceptions import ForbiddenError, InvalidTransitionError, NotFoundError
from services.notifications import notify_support_reply
from utils.helpers import now_utc
from utils.logger import logger


async def _get_chat(session: AsyncSession, chat_id: int) -> SupportChat:
    chat = await crud.get_chat(session, chat_id)
    if not chat:
        raise NotFoundError("Chat not found")
    return chat


def _ensure_open(chat: SupportChat) -> None:
    if chat.status == ChatStatus.CLOSED:
        raise InvalidTransitionError("Chat is closed")


# ============== USER SIDE ==============

async def create_chat(
    session: AsyncSession,
    user_id: int,
    message: str,
    subject: str | None = None,
    priority: ChatPriority | str = ChatPriority.MEDIUM,
) -> SupportChat:
    return await crud.create_chat(
        session,
        user_id=user_id,
        subject=subject,
        priority=ChatPriority(priority),
        first_message=message,
        now=now_utc(),
    )


async def list_user_chats(session: AsyncSession, user_id: int) -> list[SupportChat]:
    return await crud.get_user_chats(session, user_id)


async def get_user_chat(session: AsyncSession, chat_id: int, user_id: int) -> SupportChat:
    """Открыть чат владельцем: ответы поддержки помечаются прочитанными."""
    chat = await _get_chat(session, chat_id)
    if chat.user_id != user_id:
        raise ForbiddenError("Chat belongs to another user")

    await crud.mark_messages_read(session, chat, (SenderType.ADMIN, SenderType.SYSTEM))
    return chat


async def post_user_message(
    session: AsyncSession,
    chat_id: int,
    user_id: int,
    text: str,
) -> SupportMessage:
    chat = await _get_chat(session, chat_id)
    if chat.user_id != user_id:
        raise ForbiddenError("Chat belongs to another user")
    _ensure_open(chat)

    message = await crud.add_message(session, chat, SenderType.USER, user_id, text, now_utc())
    chat.status = ChatStatus.OPEN
    await session.commit()
    await session.refresh(message)
    return message


async def unread_count(session: AsyncSession, user_id: int) -> int:
    return await crud.count_unread_for_user(session, user_id)


# ============== ADMIN SIDE ==============

async def list_admin_chats(
    session: AsyncSession,
    status: ChatStatus | None = None,
) -> list[SupportChat]:
    return await crud.get_admin_chats(session, status)


async def get_admin_chat(session: AsyncSession, chat_id: int) -> SupportChat:
    chat = await _get_chat(session, chat_id)
    await crud.mark_messages_read(session, chat, (SenderType.USER,))
    return chat


async def admin_reply(
    session: AsyncSession,
    chat_id: int,
    admin: User,
    text: str,
) -> SupportMessage:
    """Ответ админа: чат ждёт реакции пользователя, пользователь получает уведомление."""
    chat = await _get_chat(session, chat_id)
    _ensure_open(chat)

    message = await crud.add_message(session, chat, SenderType.ADMIN, admin.id, text, now_utc())
    chat.status = ChatStatus.WAITING
    if chat.admin_id is None:
        chat.admin_id = admin.id
    await session.commit()
    await session.refresh(message)

    logger.info(f"Admin {admin.id} replied in support chat {chat_id}")
    notify_support_reply(chat.user, chat.id, text)
    return message


async def assign_chat(session: AsyncSession, chat_id: int, admin: User) -> SupportChat:
    chat = await _get_chat(session, chat_id)
    _ensure_open(chat)

    chat.admin_id = admin.id
    await crud.add_message(
        session, chat, SenderType.SYSTEM, None,
        f"Администратор {admin.first_name} подключился к чату.", now_utc(),
    )
    await session.commit()

    logger.info(f"Support chat {chat_id} assigned to admin {admin.id}")
    return await _get_chat(session, chat_id)


async def close_chat(session: AsyncSession, chat_id: int) -> SupportChat:
    chat = await _get_chat(session, chat_id)
    _ensure_open(chat)

    chat.status = ChatStatus.CLOSED
    await crud.add_message(session, chat, SenderType.SYSTEM, None, "Чат закрыт.", now_utc())
    await session.commit()

    logger.info(f"Support chat {chat_id} closed")
    return await _get_chat(session, chat_id)
