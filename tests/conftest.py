"""Pytest fixtures for trailer rental tests."""

import os

# Settings are read at import time; required values must exist before any app import
os.environ.setdefault("BOT_TOKEN", "123456:TEST-token")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("TINKOFF_FORCE_MOCK", "true")

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from database.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    PhoneVerificationStatus,
    SupportChat,
    ChatStatus,
    Trailer,
    TrailerStatus,
    User,
    VerificationStatus,
)
from services.pricing import RateCard, RentalType


@pytest.fixture
def mock_session():
    """Create a mock async session."""
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_bot():
    """Create a mock bot instance."""
    bot = AsyncMock()
    bot.send_message = AsyncMock()
    return bot


@pytest.fixture
def now_utc():
    """Get current UTC time."""
    return datetime.now(timezone.utc)


@pytest.fixture
def sample_user():
    """Create a sample user."""
    user = MagicMock(spec=User)
    user.id = 1
    user.telegram_id = 123456789
    user.first_name = "Test"
    user.last_name = "User"
    user.full_name = "Test User"
    user.username = "testuser"
    user.phone_number = "+79000000000"
    user.phone_verification_status = PhoneVerificationStatus.VERIFIED
    user.verification_status = VerificationStatus.VERIFIED
    user.verification_comment = None
    user.is_admin = False
    user.created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return user


@pytest.fixture
def sample_admin():
    """Create a sample admin user."""
    user = MagicMock(spec=User)
    user.id = 2
    user.telegram_id = 987654321
    user.first_name = "Admin"
    user.last_name = None
    user.full_name = "Admin"
    user.username = "adminuser"
    user.phone_number = None
    user.phone_verification_status = PhoneVerificationStatus.REQUIRED
    user.verification_status = VerificationStatus.VERIFIED
    user.verification_comment = None
    user.is_admin = True
    user.created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return user


@pytest.fixture
def sample_trailer():
    """Create a sample trailer with the default rate card."""
    trailer = MagicMock(spec=Trailer)
    trailer.id = 10
    trailer.name = "Прицеп 2 м"
    trailer.status = TrailerStatus.AVAILABLE
    trailer.rate_card = RateCard()
    return trailer


@pytest.fixture
def sample_booking(sample_user, sample_trailer, now_utc):
    """Create a sample booking awaiting payment."""
    booking = MagicMock(spec=Booking)
    booking.id = 100
    booking.user_id = sample_user.id
    booking.user = sample_user
    booking.trailer_id = sample_trailer.id
    booking.trailer = sample_trailer
    booking.start_time = now_utc + timedelta(hours=1)
    booking.end_time = now_utc + timedelta(hours=4)
    booking.rental_type = RentalType.HOURLY
    booking.pickup = False
    booking.base_cost = 600
    booking.additional_cost = 0
    booking.deposit = 5000
    booking.total = 600
    booking.status = BookingStatus.PENDING_PAYMENT
    booking.return_reminder_sent = False
    booking.payments = []
    return booking


@pytest.fixture
def sample_payment(sample_booking):
    """Create a sample rental payment bound to the booking."""
    payment = MagicMock(spec=Payment)
    payment.id = 500
    payment.booking_id = sample_booking.id
    payment.booking = sample_booking
    payment.user_id = sample_booking.user_id
    payment.type = PaymentType.RENTAL
    payment.amount = 600
    payment.status = PaymentStatus.PENDING
    payment.order_id = "100-R-abcdef123456"
    payment.gateway_payment_id = "777"
    payment.payment_url = "https://pay.example/777"
    return payment


@pytest.fixture
def sample_chat(sample_user):
    """Create an open support chat."""
    chat = MagicMock(spec=SupportChat)
    chat.id = 50
    chat.user_id = sample_user.id
    chat.user = sample_user
    chat.admin_id = None
    chat.status = ChatStatus.OPEN
    return chat
