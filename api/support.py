"""Чат поддержки: маршруты пользователя."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from api.schemas import ChatCreate, ChatOut, MessageIn, MessageOut, ok
from database.models import User
from services import support

router = APIRouter(prefix="/api/support")


@router.post("/chats", status_code=201)
async def create_chat(
    data: ChatCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    chat = await support.create_chat(
        db, user.id, data.message, subject=data.subject, priority=data.priority
    )
    return ok(ChatOut.model_validate(chat))


@router.get("/chats")
async def list_chats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chats = await support.list_user_chats(db, user.id)
    return ok([ChatOut.model_validate(chat) for chat in chats])


@router.get("/chats/{chat_id}")
async def get_chat(
    chat_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    chat = await support.get_user_chat(db, chat_id, user.id)
    return ok(ChatOut.model_validate(chat))


@router.post("/chats/{chat_id}/messages", status_code=201)
async def post_message(
    chat_id: int,
    data: MessageIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    message = await support.post_user_message(db, chat_id, user.id, data.text)
    return ok(MessageOut.model_validate(message))


@router.get("/unread-count")
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return ok({"count": await support.unread_count(db, user.id)})
