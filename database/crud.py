"""CRUD operations for database."""

from datetime import datetime

from sqlalchemy import select, and_, case, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import (
    Booking,
    BookingPhoto,
    BookingStatus,
    ChatPriority,
    ChatStatus,
    Document,
    DocumentStatus,
    DocumentType,
    Location,
    Payment,
    PaymentStatus,
    PaymentType,
    PhoneVerificationStatus,
    PhotoCheckType,
    PhotoSide,
    SenderType,
    SupportChat,
    SupportMessage,
    Trailer,
    User,
)
from services.pricing import Quote, RentalType
from utils.cache import catalog_cache
from utils.logger import logger


# Брони в этих статусах не занимают прицеп
INACTIVE_BOOKING_STATUSES = (BookingStatus.CLOSED, BookingStatus.CANCELLED)


# ============== USER OPERATIONS ==============

async def get_user(session: AsyncSession, user_id: int) -> User | None:
    result = await session.execute(
        select(User).where(User.id == user_id)
    )
    return result.scalar_one_or_none()


async def get_user_by_telegram_id(session: AsyncSession, telegram_id: int) -> User | None:
    result = await session.execute(
        select(User).where(User.telegram_id == telegram_id)
    )
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    telegram_id: int,
    first_name: str,
    last_name: str | None = None,
    username: str | None = None,
    is_admin: bool = False,
) -> User:
    user = User(
        telegram_id=telegram_id,
        first_name=first_name,
        last_name=last_name,
        username=username,
        is_admin=is_admin,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info(f"Created user: {user.id} (tg={telegram_id}), admin={is_admin}")
    return user


async def update_user(
    session: AsyncSession,
    user_id: int,
    **kwargs,
) -> User | None:
    user = await get_user(session, user_id)
    if not user:
        return None

    for key, value in kwargs.items():
        if hasattr(user, key):
            setattr(user, key, value)

    await session.commit()
    await session.refresh(user)

    logger.info(f"Updated user {user_id}: {kwargs}")
    return user


async def set_user_phone(
    session: AsyncSession,
    telegram_id: int,
    phone_number: str,
) -> User | None:
    user = await get_user_by_telegram_id(session, telegram_id)
    if not user:
        return None

    user.phone_number = phone_number
    user.phone_verification_status = PhoneVerificationStatus.VERIFIED
    await session.commit()
    await session.refresh(user)

    logger.info(f"Phone verified for user {user.id}")
    return user


async def get_all_users(session: AsyncSession) -> list[User]:
    result = await session.execute(
        select(User).order_by(User.created_at.desc())
    )
    return list(result.scalars().all())


# ============== LOCATION OPERATIONS ==============

async def get_all_locations(session: AsyncSession) -> list[Location]:
    cache_key = "locations:all"
    cached = catalog_cache.get(cache_key)
    if cached is not None:
        return cached

    result = await session.execute(
        select(Location).order_by(Location.name)
    )
    locations = list(result.scalars().all())

    catalog_cache.set(cache_key, locations)
    return locations


async def get_location(session: AsyncSession, location_id: int) -> Location | None:
    result = await session.execute(
        select(Location).where(Location.id == location_id)
    )
    return result.scalar_one_or_none()


async def create_location(session: AsyncSession, **fields) -> Location:
    location = Location(**fields)
    session.add(location)
    await session.commit()
    await session.refresh(location)

    catalog_cache.clear()

    logger.info(f"Created location: {location.id} - {location.name}")
    return location


async def update_location(
    session: AsyncSession,
    location_id: int,
    **fields,
) -> Location | None:
    location = await get_location(session, location_id)
    if not location:
        return None

    for key, value in fields.items():
        if hasattr(location, key):
            setattr(location, key, value)

    await session.commit()
    await session.refresh(location)

    catalog_cache.clear()

    logger.info(f"Updated location {location_id}: {fields}")
    return location


async def delete_location(session: AsyncSession, location_id: int) -> bool:
    location = await get_location(session, location_id)
    if not location:
        return False

    # Прицепы остаются, но без точки выдачи
    trailers = await session.execute(
        select(Trailer).where(Trailer.location_id == location_id)
    )
    for trailer in trailers.scalars().all():
        trailer.location_id = None

    await session.delete(location)
    await session.commit()

    catalog_cache.clear()

    logger.info(f"Deleted location {location_id}")
    return True


# ============== TRAILER OPERATIONS ==============

async def get_all_trailers(
    session: AsyncSession,
    location_id: int | None = None,
) -> list[Trailer]:
    cache_key = f"trailers:{location_id}"
    cached = catalog_cache.get(cache_key)
    if cached is not None:
        return cached

    query = (
        select(Trailer)
        .options(selectinload(Trailer.location))
        .order_by(Trailer.name)
    )
    if location_id is not None:
        query = query.where(Trailer.location_id == location_id)

    result = await session.execute(query)
    trailers = list(result.scalars().all())

    catalog_cache.set(cache_key, trailers)
    return trailers


async def get_trailer(
    session: AsyncSession,
    trailer_id: int,
    for_update: bool = False,
    reload: bool = False,
) -> Trailer | None:
    """
    for_update=True: SELECT ... FOR UPDATE на строку прицепа.
    reload=True: перечитать атрибуты уже загруженного объекта.
    """
    query = (
        select(Trailer)
        .where(Trailer.id == trailer_id)
        .options(selectinload(Trailer.location))
    )
    if for_update:
        query = query.with_for_update()
    if reload:
        query = query.execution_options(populate_existing=True)

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create_trailer(session: AsyncSession, **fields) -> Trailer:
    trailer = Trailer(**fields)
    session.add(trailer)
    await session.commit()

    catalog_cache.invalidate_prefix("trailers:")

    logger.info(f"Created trailer: {trailer.id} - {trailer.name}")
    return await get_trailer(session, trailer.id, reload=True)


async def update_trailer(
    session: AsyncSession,
    trailer_id: int,
    **fields,
) -> Trailer | None:
    trailer = await get_trailer(session, trailer_id)
    if not trailer:
        return None

    for key, value in fields.items():
        if hasattr(trailer, key):
            setattr(trailer, key, value)

    await session.commit()

    catalog_cache.invalidate_prefix("trailers:")

    logger.info(f"Updated trailer {trailer_id}: {fields}")
    return await get_trailer(session, trailer_id, reload=True)


async def count_trailer_bookings(session: AsyncSession, trailer_id: int) -> int:
    result = await session.execute(
        select(func.count()).select_from(Booking).where(Booking.trailer_id == trailer_id)
    )
    return result.scalar() or 0


async def delete_trailer(session: AsyncSession, trailer_id: int) -> bool:
    trailer = await get_trailer(session, trailer_id)
    if not trailer:
        return False

    await session.delete(trailer)
    await session.commit()

    catalog_cache.invalidate_prefix("trailers:")

    logger.info(f"Deleted trailer {trailer_id}")
    return True


# ============== BOOKING OPERATIONS ==============

async def get_trailer_bookings_in_window(
    session: AsyncSession,
    trailer_id: int,
    start_time: datetime,
    end_time: datetime,
) -> list[Booking]:
    """Активные брони прицепа, пересекающиеся с [start_time, end_time]."""
    result = await session.execute(
        select(Booking)
        .where(
            and_(
                Booking.trailer_id == trailer_id,
                Booking.status.not_in(INACTIVE_BOOKING_STATUSES),
                Booking.start_time <= end_time,
                Booking.end_time >= start_time,
            )
        )
        .order_by(Booking.start_time)
    )
    return list(result.scalars().all())


async def create_booking(
    session: AsyncSession,
    user_id: int,
    trailer_id: int,
    start_time: datetime,
    end_time: datetime,
    rental_type: RentalType,
    pickup: bool,
    quote: Quote,
) -> Booking:
    """
    Сохранить бронь со снимком цены.

    IntegrityError от ограничения на пересечение броней не перехватывается:
    откат и перевод в ConflictError делает вызывающий код.
    """
    booking = Booking(
        user_id=user_id,
        trailer_id=trailer_id,
        start_time=start_time,
        end_time=end_time,
        rental_type=rental_type,
        pickup=pickup,
        base_cost=quote.base_cost,
        additional_cost=quote.additional_cost,
        deposit=quote.deposit,
        total=quote.total,
        status=BookingStatus.PENDING_PAYMENT,
    )
    session.add(booking)
    await session.commit()
    await session.refresh(booking)

    logger.info(f"Created booking: {booking.id} for user {user_id}, trailer {trailer_id}")
    return booking


async def get_booking(
    session: AsyncSession,
    booking_id: int,
    load_relations: bool = False,
) -> Booking | None:
    query = select(Booking).where(Booking.id == booking_id)

    if load_relations:
        query = query.options(
            selectinload(Booking.user),
            selectinload(Booking.trailer),
            selectinload(Booking.payments),
        )

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_user_bookings(
    session: AsyncSession,
    user_id: int,
) -> list[Booking]:
    result = await session.execute(
        select(Booking)
        .where(Booking.user_id == user_id)
        .options(selectinload(Booking.trailer))
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())


async def get_bookings(
    session: AsyncSession,
    status: BookingStatus | None = None,
) -> list[Booking]:
    query = (
        select(Booking)
        .options(
            selectinload(Booking.user),
            selectinload(Booking.trailer),
        )
        .order_by(Booking.created_at.desc())
    )
    if status is not None:
        query = query.where(Booking.status == status)

    result = await session.execute(query)
    return list(result.scalars().all())


async def get_unpaid_bookings_before(
    session: AsyncSession,
    created_before: datetime,
) -> list[Booking]:
    result = await session.execute(
        select(Booking)
        .where(
            and_(
                Booking.status == BookingStatus.PENDING_PAYMENT,
                Booking.created_at < created_before,
            )
        )
        .options(
            selectinload(Booking.user),
            selectinload(Booking.trailer),
        )
    )
    return list(result.scalars().all())


async def get_bookings_ending_between(
    session: AsyncSession,
    window_start: datetime,
    window_end: datetime,
) -> list[Booking]:
    """ACTIVE брони без напоминания, которые заканчиваются в окне."""
    result = await session.execute(
        select(Booking)
        .where(
            and_(
                Booking.status == BookingStatus.ACTIVE,
                Booking.return_reminder_sent == False,
                Booking.end_time > window_start,
                Booking.end_time <= window_end,
            )
        )
        .options(
            selectinload(Booking.user),
            selectinload(Booking.trailer),
        )
        .order_by(Booking.end_time)
    )
    return list(result.scalars().all())


async def set_return_reminder_sent(
    session: AsyncSession,
    booking_id: int,
) -> Booking | None:
    booking = await get_booking(session, booking_id)
    if not booking:
        return None

    booking.return_reminder_sent = True
    await session.commit()
    await session.refresh(booking)

    return booking


async def get_bookings_for_report(
    session: AsyncSession,
    start_date: datetime,
    end_date: datetime,
    trailer_id: int | None = None,
    user_id: int | None = None,
) -> list[Booking]:
    query = (
        select(Booking)
        .where(
            and_(
                Booking.start_time >= start_date,
                Booking.start_time <= end_date,
            )
        )
        .options(
            selectinload(Booking.user),
            selectinload(Booking.trailer),
            selectinload(Booking.payments),
        )
        .order_by(Booking.start_time)
    )
    if trailer_id is not None:
        query = query.where(Booking.trailer_id == trailer_id)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)

    result = await session.execute(query)
    return list(result.scalars().all())


# ============== PAYMENT OPERATIONS ==============

async def create_payment(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
    payment_type: PaymentType,
    amount: int,
    order_id: str,
    gateway_payment_id: str | None,
    payment_url: str | None,
) -> Payment:
    payment = Payment(
        booking_id=booking_id,
        user_id=user_id,
        type=payment_type,
        amount=amount,
        status=PaymentStatus.PENDING,
        order_id=order_id,
        gateway_payment_id=gateway_payment_id,
        payment_url=payment_url,
    )
    session.add(payment)
    await session.commit()
    await session.refresh(payment)

    logger.info(
        f"Created payment: {payment.id} ({payment_type.value}, {amount}₽) for booking {booking_id}"
    )
    return payment


async def get_payment(session: AsyncSession, payment_id: int) -> Payment | None:
    result = await session.execute(
        select(Payment)
        .where(Payment.id == payment_id)
        .options(selectinload(Payment.booking))
    )
    return result.scalar_one_or_none()


async def get_payment_by_gateway_id(
    session: AsyncSession,
    gateway_payment_id: str,
) -> Payment | None:
    result = await session.execute(
        select(Payment)
        .where(Payment.gateway_payment_id == gateway_payment_id)
        .options(selectinload(Payment.booking))
    )
    return result.scalar_one_or_none()


async def get_payment_by_order_id(session: AsyncSession, order_id: str) -> Payment | None:
    result = await session.execute(
        select(Payment)
        .where(Payment.order_id == order_id)
        .options(selectinload(Payment.booking))
    )
    return result.scalar_one_or_none()


async def get_booking_payment(
    session: AsyncSession,
    booking_id: int,
    payment_type: PaymentType,
    status: PaymentStatus,
) -> Payment | None:
    """Последний платёж брони указанного типа и статуса."""
    result = await session.execute(
        select(Payment)
        .where(
            and_(
                Payment.booking_id == booking_id,
                Payment.type == payment_type,
                Payment.status == status,
            )
        )
        .order_by(Payment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_payments(
    session: AsyncSession,
    status: PaymentStatus | None = None,
) -> list[Payment]:
    query = select(Payment).order_by(Payment.created_at.desc())
    if status is not None:
        query = query.where(Payment.status == status)

    result = await session.execute(query)
    return list(result.scalars().all())


async def get_stale_payments(
    session: AsyncSession,
    created_before: datetime,
) -> list[Payment]:
    """Незавершённые платежи старше created_before (пропущенные вебхуки)."""
    result = await session.execute(
        select(Payment)
        .where(
            and_(
                Payment.status.in_((PaymentStatus.PENDING, PaymentStatus.PROCESSING)),
                Payment.gateway_payment_id.is_not(None),
                Payment.created_at < created_before,
            )
        )
        .options(selectinload(Payment.booking))
    )
    return list(result.scalars().all())


# ============== DOCUMENT OPERATIONS ==============

async def create_document(
    session: AsyncSession,
    user_id: int,
    doc_type: DocumentType,
    file_url: str,
    mime_type: str,
    file_name: str | None = None,
) -> Document:
    document = Document(
        user_id=user_id,
        type=doc_type,
        file_url=file_url,
        file_name=file_name,
        mime_type=mime_type,
        status=DocumentStatus.PENDING,
    )
    session.add(document)
    await session.commit()
    await session.refresh(document)

    logger.info(f"Created document: {document.id} ({doc_type.value}) for user {user_id}")
    return document


async def get_document(session: AsyncSession, document_id: int) -> Document | None:
    result = await session.execute(
        select(Document)
        .where(Document.id == document_id)
        .options(selectinload(Document.user))
    )
    return result.scalar_one_or_none()


async def get_user_documents(session: AsyncSession, user_id: int) -> list[Document]:
    """Документы пользователя, новые первыми."""
    result = await session.execute(
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.id.desc())
    )
    return list(result.scalars().all())


async def get_pending_documents(session: AsyncSession) -> list[Document]:
    """Очередь модерации: старые первыми."""
    result = await session.execute(
        select(Document)
        .where(Document.status == DocumentStatus.PENDING)
        .options(selectinload(Document.user))
        .order_by(Document.created_at)
    )
    return list(result.scalars().all())


# ============== PHOTO OPERATIONS ==============

async def get_booking_photos(
    session: AsyncSession,
    booking_id: int,
    check_type: PhotoCheckType | None = None,
) -> list[BookingPhoto]:
    query = (
        select(BookingPhoto)
        .where(BookingPhoto.booking_id == booking_id)
        .order_by(BookingPhoto.id)
    )
    if check_type is not None:
        query = query.where(BookingPhoto.check_type == check_type)

    result = await session.execute(query)
    return list(result.scalars().all())


async def save_booking_photo(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
    check_type: PhotoCheckType,
    side: PhotoSide,
    file_url: str,
) -> BookingPhoto:
    """Добавить или заменить фото стороны без коммита."""
    result = await session.execute(
        select(BookingPhoto).where(
            and_(
                BookingPhoto.booking_id == booking_id,
                BookingPhoto.check_type == check_type,
                BookingPhoto.side == side,
            )
        )
    )
    photo = result.scalar_one_or_none()
    if photo is None:
        photo = BookingPhoto(
            booking_id=booking_id,
            user_id=user_id,
            check_type=check_type,
            side=side,
            file_url=file_url,
        )
        session.add(photo)
    else:
        photo.file_url = file_url
    return photo


# ============== SUPPORT OPERATIONS ==============

PRIORITY_ORDER = case(
    {
        ChatPriority.URGENT: 0,
        ChatPriority.HIGH: 1,
        ChatPriority.MEDIUM: 2,
        ChatPriority.LOW: 3,
    },
    value=SupportChat.priority,
)


async def create_chat(
    session: AsyncSession,
    user_id: int,
    subject: str | None,
    priority: ChatPriority,
    first_message: str,
    now: datetime,
) -> SupportChat:
    chat = SupportChat(
        user_id=user_id,
        subject=subject,
        priority=priority,
        status=ChatStatus.OPEN,
        last_message_at=now,
    )
    session.add(chat)
    await session.flush()

    session.add(SupportMessage(
        chat_id=chat.id,
        sender_type=SenderType.USER,
        sender_id=user_id,
        text=first_message,
    ))
    await session.commit()

    logger.info(f"Created support chat: {chat.id} for user {user_id}")
    return await get_chat(session, chat.id)


async def get_chat(session: AsyncSession, chat_id: int) -> SupportChat | None:
    result = await session.execute(
        select(SupportChat)
        .where(SupportChat.id == chat_id)
        .options(
            selectinload(SupportChat.messages),
            selectinload(SupportChat.user),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_chats(session: AsyncSession, user_id: int) -> list[SupportChat]:
    result = await session.execute(
        select(SupportChat)
        .where(SupportChat.user_id == user_id)
        .options(selectinload(SupportChat.messages))
        .order_by(SupportChat.last_message_at.desc().nulls_last())
    )
    return list(result.scalars().all())


async def get_admin_chats(
    session: AsyncSession,
    status: ChatStatus | None = None,
) -> list[SupportChat]:
    """Чаты для админки: по приоритету, затем по последнему сообщению."""
    query = (
        select(SupportChat)
        .options(
            selectinload(SupportChat.messages),
            selectinload(SupportChat.user),
        )
        .order_by(PRIORITY_ORDER, SupportChat.last_message_at.desc().nulls_last())
    )
    if status is not None:
        query = query.where(SupportChat.status == status)
    else:
        query = query.where(SupportChat.status.in_((ChatStatus.OPEN, ChatStatus.WAITING)))

    result = await session.execute(query)
    return list(result.scalars().all())


async def add_message(
    session: AsyncSession,
    chat: SupportChat,
    sender_type: SenderType,
    sender_id: int | None,
    text: str,
    now: datetime,
) -> SupportMessage:
    """Добавить сообщение без коммита: статус чата меняет вызывающий код."""
    message = SupportMessage(
        chat_id=chat.id,
        sender_type=sender_type,
        sender_id=sender_id,
        text=text,
    )
    session.add(message)
    chat.last_message_at = now
    chat.updated_at = now
    return message


async def mark_messages_read(
    session: AsyncSession,
    chat: SupportChat,
    sender_types: tuple[SenderType, ...],
) -> int:
    """Пометить прочитанными сообщения указанных отправителей."""
    count = 0
    for message in chat.messages:
        if message.sender_type in sender_types and not message.is_read:
            message.is_read = True
            count += 1

    if count:
        await session.commit()
    return count


async def count_unread_for_user(session: AsyncSession, user_id: int) -> int:
    """Непрочитанные ответы поддержки во всех чатах пользователя."""
    result = await session.execute(
        select(func.count())
        .select_from(SupportMessage)
        .join(SupportChat, SupportChat.id == SupportMessage.chat_id)
        .where(
            and_(
                SupportChat.user_id == user_id,
                SupportMessage.sender_type != SenderType.USER,
                SupportMessage.is_read == False,
            )
        )
    )
    return result.scalar() or 0


# ============== STATS ==============

async def get_stats(session: AsyncSession) -> dict[str, int]:
    users = await session.execute(select(func.count()).select_from(User))
    trailers = await session.execute(select(func.count()).select_from(Trailer))

    bookings_by_status = await session.execute(
        select(Booking.status, func.count()).group_by(Booking.status)
    )
    status_counts = {
        getattr(status, "value", status): count
        for status, count in bookings_by_status.all()
    }

    revenue = await session.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            and_(
                Payment.type == PaymentType.RENTAL,
                Payment.status == PaymentStatus.COMPLETED,
            )
        )
    )
    open_chats = await session.execute(
        select(func.count())
        .select_from(SupportChat)
        .where(SupportChat.status.in_((ChatStatus.OPEN, ChatStatus.WAITING)))
    )

    return {
        "users": users.scalar() or 0,
        "trailers": trailers.scalar() or 0,
        "bookings": sum(status_counts.values()),
        "activeBookings": status_counts.get(BookingStatus.ACTIVE.value, 0),
        "pendingPayment": status_counts.get(BookingStatus.PENDING_PAYMENT.value, 0),
        "revenue": revenue.scalar() or 0,
        "openSupportChats": open_chats.scalar() or 0,
    }
