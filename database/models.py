"""Модели SQLAlchemy: пользователи, прицепы, брони, платежи, документы, фото, поддержка."""

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from services.pricing import RateCard, RentalType


class TrailerStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    MAINTENANCE = "MAINTENANCE"


class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class PaymentType(str, enum.Enum):
    RENTAL = "RENTAL"
    DEPOSIT_HOLD = "DEPOSIT_HOLD"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class PhoneVerificationStatus(str, enum.Enum):
    REQUIRED = "REQUIRED"
    VERIFIED = "VERIFIED"


class ChatStatus(str, enum.Enum):
    OPEN = "OPEN"
    WAITING = "WAITING"
    CLOSED = "CLOSED"


class ChatPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class SenderType(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class DocumentType(str, enum.Enum):
    PASSPORT = "PASSPORT"
    DRIVER_LICENSE = "DRIVER_LICENSE"


class DocumentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PhotoCheckType(str, enum.Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"


class PhotoSide(str, enum.Enum):
    FRONT = "FRONT"
    REAR = "REAR"
    LEFT = "LEFT"
    RIGHT = "RIGHT"


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    # Статусы храним строками: миграции не зависят от типов PostgreSQL
    return Enum(enum_cls, native_enum=False, length=20, validate_strings=True)


class Base(DeclarativeBase):
    """Базовый класс для всех моделей."""
    pass


class User(Base):
    """Пользователь Mini App, авторизованный через Telegram."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    phone_verification_status: Mapped[PhoneVerificationStatus] = mapped_column(
        _enum_column(PhoneVerificationStatus), default=PhoneVerificationStatus.REQUIRED
    )
    verification_status: Mapped[VerificationStatus] = mapped_column(
        _enum_column(VerificationStatus), default=VerificationStatus.PENDING
    )
    verification_comment: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Связи
    bookings: Mapped[list["Booking"]] = relationship(back_populates="user")
    documents: Mapped[list["Document"]] = relationship(
        back_populates="user", foreign_keys="Document.user_id", order_by="Document.id"
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return f"<User {self.id}: tg={self.telegram_id}>"


class Location(Base):
    """Точка выдачи прицепов."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    opens_at: Mapped[str] = mapped_column(String(5), default="08:00")
    closes_at: Mapped[str] = mapped_column(String(5), default="22:00")
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Связи
    trailers: Mapped[list["Trailer"]] = relationship(back_populates="location")

    def __repr__(self) -> str:
        return f"<Location {self.id}: {self.name}>"


class Trailer(Base):
    """Прицеп с тарифной сеткой."""

    __tablename__ = "trailers"
    __table_args__ = (
        CheckConstraint(
            "min_hours >= 0 AND min_cost >= 0 AND hour_price >= 0 AND day_price >= 0 "
            "AND deposit >= 0 AND pickup_price >= 0",
            name="ck_trailers_rate_card_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    capacity_kg: Mapped[int | None] = mapped_column(Integer, nullable=True)
    has_tent: Mapped[bool] = mapped_column(Boolean, default=False)
    axles: Mapped[int] = mapped_column(Integer, default=1)
    photos: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True, default=list)
    location_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("locations.id"), nullable=True
    )
    status: Mapped[TrailerStatus] = mapped_column(
        _enum_column(TrailerStatus), default=TrailerStatus.AVAILABLE
    )

    # Тарифная сетка
    min_hours: Mapped[int] = mapped_column(Integer, default=2)
    min_cost: Mapped[int] = mapped_column(Integer, default=500)
    hour_price: Mapped[int] = mapped_column(Integer, default=100)
    day_price: Mapped[int] = mapped_column(Integer, default=900)
    deposit: Mapped[int] = mapped_column(Integer, default=5000)
    pickup_price: Mapped[int] = mapped_column(Integer, default=500)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Связи
    location: Mapped["Location | None"] = relationship(back_populates="trailers")
    bookings: Mapped[list["Booking"]] = relationship(back_populates="trailer")

    @property
    def rate_card(self) -> RateCard:
        return RateCard(
            min_hours=self.min_hours,
            min_cost=self.min_cost,
            hour_price=self.hour_price,
            day_price=self.day_price,
            deposit=self.deposit,
            pickup_price=self.pickup_price,
        )

    def __repr__(self) -> str:
        return f"<Trailer {self.id}: {self.name}>"


class Booking(Base):
    """
    Бронь прицепа.

    Цена фиксируется при создании и больше не пересчитывается.
    Пересечение броней одного прицепа запрещено ограничением
    ex_bookings_trailer_interval (см. миграцию 0001).
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_interval"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Внешние ключи
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    trailer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("trailers.id"), nullable=False, index=True
    )

    # Временной диапазон [start_time, end_time)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    rental_type: Mapped[RentalType] = mapped_column(_enum_column(RentalType), nullable=False)
    pickup: Mapped[bool] = mapped_column(Boolean, default=False)

    # Снимок цены
    base_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    additional_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus), default=BookingStatus.PENDING_PAYMENT, index=True
    )

    # Временные метки
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Флаги
    return_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    # Связи
    user: Mapped["User"] = relationship(back_populates="bookings")
    trailer: Mapped["Trailer"] = relationship(back_populates="bookings")
    payments: Mapped[list["Payment"]] = relationship(back_populates="booking")
    photos: Mapped[list["BookingPhoto"]] = relationship(
        back_populates="booking", order_by="BookingPhoto.id"
    )

    @property
    def pricing(self) -> dict[str, int]:
        """Снимок цены в формате клиента."""
        return {
            "baseCost": self.base_cost,
            "additionalCost": self.additional_cost,
            "deposit": self.deposit,
            "total": self.total,
        }

    def __repr__(self) -> str:
        return f"<Booking {self.id}: {self.status}>"


class Payment(Base):
    """Платёж по брони: аренда или блокировка залога."""

    __tablename__ = "payments"
    __table_args__ = (
        # Не больше одного живого платежа каждого типа на бронь
        Index(
            "uq_payments_booking_type_open",
            "booking_id",
            "type",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'PROCESSING', 'COMPLETED')"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    type: Mapped[PaymentType] = mapped_column(_enum_column(PaymentType), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus), default=PaymentStatus.PENDING, index=True
    )
    order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Связи
    booking: Mapped["Booking"] = relationship(back_populates="payments")
    user: Mapped["User"] = relationship()

    def __repr__(self) -> str:
        return f"<Payment {self.id}: {self.type} {self.status}>"


class SupportChat(Base):
    """Чат поддержки пользователя."""

    __tablename__ = "support_chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    admin_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ChatStatus] = mapped_column(_enum_column(ChatStatus), default=ChatStatus.OPEN)
    priority: Mapped[ChatPriority] = mapped_column(
        _enum_column(ChatPriority), default=ChatPriority.MEDIUM
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Связи
    user: Mapped["User"] = relationship(foreign_keys=[user_id])
    messages: Mapped[list["SupportMessage"]] = relationship(
        back_populates="chat", order_by="SupportMessage.id"
    )

    def __repr__(self) -> str:
        return f"<SupportChat {self.id}: {self.status}>"


class SupportMessage(Base):
    """Сообщение в чате поддержки."""

    __tablename__ = "support_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("support_chats.id"), nullable=False, index=True
    )
    sender_type: Mapped[SenderType] = mapped_column(_enum_column(SenderType), nullable=False)
    sender_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Связи
    chat: Mapped["SupportChat"] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<SupportMessage {self.id}: {self.sender_type}>"


class Document(Base):
    """
    Документ пользователя на проверку.

    Хранятся только метаданные: сам файл лежит во внешнем хранилище,
    здесь ссылка на него.
    """

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[DocumentType] = mapped_column(_enum_column(DocumentType), nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(
        _enum_column(DocumentStatus), default=DocumentStatus.PENDING, index=True
    )
    reviewed_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Связи
    user: Mapped["User"] = relationship(back_populates="documents", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return f"<Document {self.id}: {self.type} {self.status}>"


class BookingPhoto(Base):
    """Фото прицепа при выдаче (CHECK_IN) или возврате (CHECK_OUT)."""

    __tablename__ = "booking_photos"
    __table_args__ = (
        UniqueConstraint("booking_id", "check_type", "side", name="uq_booking_photos_side"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    check_type: Mapped[PhotoCheckType] = mapped_column(_enum_column(PhotoCheckType), nullable=False)
    side: Mapped[PhotoSide] = mapped_column(_enum_column(PhotoSide), nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Связи
    booking: Mapped["Booking"] = relationship(back_populates="photos")

    def __repr__(self) -> str:
        return f"<BookingPhoto {self.id}: {self.check_type} {self.side}>"
