"""Схемы запросов и ответов API. JSON-ключи в camelCase."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from database.models import (
    BookingStatus,
    ChatPriority,
    ChatStatus,
    DocumentStatus,
    DocumentType,
    PaymentStatus,
    PaymentType,
    PhoneVerificationStatus,
    PhotoCheckType,
    PhotoSide,
    SenderType,
    TrailerStatus,
    VerificationStatus,
)
from services.pricing import RentalType


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


def ok(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Успешный ответ: {success, data, message?}."""
    body: dict[str, Any] = {"success": True, "data": _dump(data)}
    if message:
        body["message"] = message
    return body


def error_body(error: str, code: str) -> dict[str, Any]:
    return {"success": False, "error": error, "code": code}


# ============== AUTH / USERS ==============

class TelegramAuthRequest(CamelModel):
    init_data: str = Field(min_length=1)


class UserOut(CamelModel):
    id: int
    telegram_id: int
    first_name: str
    last_name: str | None = None
    username: str | None = None
    phone_number: str | None = None
    phone_verification_status: PhoneVerificationStatus
    verification_status: VerificationStatus
    verification_comment: str | None = None
    is_admin: bool
    created_at: datetime | None = None


class AuthOut(CamelModel):
    user: UserOut
    token: str


class ProfileUpdate(CamelModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)


class VerifyRequest(CamelModel):
    status: VerificationStatus
    comment: str | None = Field(default=None, max_length=500)

    @field_validator("status")
    @classmethod
    def check_final_status(cls, value: VerificationStatus) -> VerificationStatus:
        if value == VerificationStatus.PENDING:
            raise ValueError("status must be VERIFIED or REJECTED")
        return value


# ============== CATALOGUE ==============

class LocationIn(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    address: str = Field(min_length=1, max_length=500)
    latitude: float | None = None
    longitude: float | None = None
    opens_at: str = Field(default="08:00", pattern=r"^\d{2}:\d{2}$")
    closes_at: str = Field(default="22:00", pattern=r"^\d{2}:\d{2}$")
    phone: str | None = None
    description: str | None = None


class LocationUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = Field(default=None, min_length=1, max_length=500)
    latitude: float | None = None
    longitude: float | None = None
    opens_at: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    closes_at: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    phone: str | None = None
    description: str | None = None


class LocationOut(CamelModel):
    id: int
    name: str
    address: str
    latitude: float | None = None
    longitude: float | None = None
    opens_at: str
    closes_at: str
    phone: str | None = None
    description: str | None = None


class TrailerIn(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    capacity_kg: int | None = Field(default=None, ge=0)
    has_tent: bool = False
    axles: int = Field(default=1, ge=1)
    photos: list[str] = Field(default_factory=list)
    location_id: int | None = None
    status: TrailerStatus = TrailerStatus.AVAILABLE
    min_hours: int = Field(default=2, ge=0)
    min_cost: int = Field(default=500, ge=0)
    hour_price: int = Field(default=100, ge=0)
    day_price: int = Field(default=900, ge=0)
    deposit: int = Field(default=5000, ge=0)
    pickup_price: int = Field(default=500, ge=0)


class TrailerUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    capacity_kg: int | None = Field(default=None, ge=0)
    has_tent: bool | None = None
    axles: int | None = Field(default=None, ge=1)
    photos: list[str] | None = None
    location_id: int | None = None
    status: TrailerStatus | None = None
    min_hours: int | None = Field(default=None, ge=0)
    min_cost: int | None = Field(default=None, ge=0)
    hour_price: int | None = Field(default=None, ge=0)
    day_price: int | None = Field(default=None, ge=0)
    deposit: int | None = Field(default=None, ge=0)
    pickup_price: int | None = Field(default=None, ge=0)


class TrailerOut(CamelModel):
    id: int
    name: str
    description: str | None = None
    capacity_kg: int | None = None
    has_tent: bool
    axles: int
    photos: list[str] | None = None
    location_id: int | None = None
    location: LocationOut | None = None
    status: TrailerStatus
    min_hours: int
    min_cost: int
    hour_price: int
    day_price: int
    deposit: int
    pickup_price: int


class TrailerBrief(CamelModel):
    id: int
    name: str


# ============== QUOTE / BOOKINGS ==============

class AdditionalServices(CamelModel):
    pickup: bool = False


class QuoteRequest(CamelModel):
    trailer_id: int
    start_time: datetime
    end_time: datetime
    rental_type: RentalType
    additional_services: AdditionalServices = Field(default_factory=AdditionalServices)


class BookingCreate(QuoteRequest):
    pass


class QuoteOut(CamelModel):
    rental_type: RentalType
    hours: int
    days: int
    base_cost: int
    additional_cost: int
    deposit: int
    total: int
    breakdown: dict[str, str]


class BookingCreated(CamelModel):
    id: int
    status: BookingStatus
    total_amount: int
    deposit_amount: int


class BookingOut(CamelModel):
    id: int
    user_id: int
    trailer_id: int
    trailer: TrailerBrief | None = None
    start_time: datetime
    end_time: datetime
    rental_type: RentalType
    pickup: bool
    pricing: dict[str, int]
    status: BookingStatus
    created_at: datetime | None = None
    paid_at: datetime | None = None
    activated_at: datetime | None = None
    returned_at: datetime | None = None
    closed_at: datetime | None = None
    cancelled_at: datetime | None = None


class BookingStatusUpdate(CamelModel):
    status: BookingStatus


# ============== PAYMENTS ==============

class PaymentCreate(CamelModel):
    booking_id: int
    type: PaymentType


class PaymentCreated(CamelModel):
    payment_id: int
    payment_url: str | None = None
    amount: int
    type: PaymentType
    status: PaymentStatus


class PaymentOut(CamelModel):
    id: int
    booking_id: int
    user_id: int
    type: PaymentType
    amount: int
    status: PaymentStatus
    order_id: str
    gateway_payment_id: str | None = None
    payment_url: str | None = None
    created_at: datetime | None = None


# ============== SUPPORT ==============

class ChatCreate(CamelModel):
    message: str = Field(min_length=1, max_length=4000)
    subject: str | None = Field(default=None, max_length=255)
    priority: ChatPriority = ChatPriority.MEDIUM


class MessageIn(CamelModel):
    text: str = Field(min_length=1, max_length=4000)


class MessageOut(CamelModel):
    id: int
    chat_id: int
    sender_type: SenderType
    sender_id: int | None = None
    text: str
    is_read: bool
    created_at: datetime | None = None


class ChatOut(CamelModel):
    id: int
    user_id: int
    admin_id: int | None = None
    subject: str | None = None
    status: ChatStatus
    priority: ChatPriority
    created_at: datetime | None = None
    last_message_at: datetime | None = None
    messages: list[MessageOut] = Field(default_factory=list)


# ============== DOCUMENTS ==============

class DocumentIn(CamelModel):
    type: DocumentType
    file_url: str = Field(min_length=1)
    mime_type: str = Field(min_length=1, max_length=50)
    file_name: str | None = Field(default=None, max_length=255)


class DocumentOut(CamelModel):
    id: int
    user_id: int
    type: DocumentType
    file_url: str
    file_name: str | None = None
    mime_type: str
    status: DocumentStatus
    review_comment: str | None = None
    created_at: datetime | None = None


class VerificationOut(CamelModel):
    status: VerificationStatus
    comment: str | None = None
    documents: list[DocumentOut]
    missing: list[DocumentType]


class DocumentReview(CamelModel):
    status: DocumentStatus
    comment: str | None = Field(default=None, max_length=500)

    @field_validator("status")
    @classmethod
    def check_final_status(cls, value: DocumentStatus) -> DocumentStatus:
        if value == DocumentStatus.PENDING:
            raise ValueError("status must be APPROVED or REJECTED")
        return value


# ============== PHOTOS / QR ==============

class PhotoSubmit(CamelModel):
    check_type: PhotoCheckType
    photos: dict[PhotoSide, str] = Field(min_length=1)


class PhotoOut(CamelModel):
    id: int
    booking_id: int
    check_type: PhotoCheckType
    side: PhotoSide
    file_url: str
    created_at: datetime | None = None


class PhotoCheckOut(CamelModel):
    booking_status: BookingStatus
    photos: list[PhotoOut]
    missing_sides: list[PhotoSide]


class PhotoPair(CamelModel):
    side: PhotoSide
    check_in: str | None = None
    check_out: str | None = None


class QrOut(CamelModel):
    link: str
    image: str
