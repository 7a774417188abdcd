"""Tests for bot handlers: /start and phone sharing."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from database.models import PhoneVerificationStatus
from handlers.phone import handle_contact, normalize_phone
from handlers.start import cmd_start


def _message(from_id: int, contact_user_id: int | None = None, phone: str = "8 (900) 123-45-67"):
    message = MagicMock()
    message.answer = AsyncMock()
    message.from_user.id = from_id
    if contact_user_id is not None:
        message.contact.user_id = contact_user_id
        message.contact.phone_number = phone
    return message


@pytest.mark.parametrize("raw,expected", [
    ("79001234567", "+79001234567"),
    ("+7 900 123-45-67", "+79001234567"),
    ("8 (900) 123-45-67", "+79001234567"),
    ("", ""),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.asyncio
async def test_start_asks_for_phone_when_unverified(sample_user):
    sample_user.phone_verification_status = PhoneVerificationStatus.REQUIRED
    message = _message(sample_user.telegram_id)

    await cmd_start(message, sample_user)

    assert message.answer.await_count == 2


@pytest.mark.asyncio
async def test_start_verified_user_gets_menu_only(sample_user):
    message = _message(sample_user.telegram_id)

    await cmd_start(message, sample_user)

    message.answer.assert_awaited_once()


@pytest.mark.asyncio
async def test_foreign_contact_rejected(sample_user):
    message = _message(sample_user.telegram_id, contact_user_id=555)

    with patch("handlers.phone.crud.set_user_phone") as mock_set_phone:
        await handle_contact(message, sample_user)

    mock_set_phone.assert_not_called()
    assert "свой номер" in message.answer.call_args.args[0]


@pytest.mark.asyncio
async def test_own_contact_saved(sample_user, mock_session):
    message = _message(sample_user.telegram_id, contact_user_id=sample_user.telegram_id)

    with patch("handlers.phone.async_session_maker", return_value=mock_session), \
         patch("handlers.phone.crud.set_user_phone", return_value=sample_user) as mock_set_phone:
        await handle_contact(message, sample_user)

    mock_set_phone.assert_awaited_once_with(mock_session, sample_user.telegram_id, "+79001234567")
    assert "подтверждён" in message.answer.await_args_list[0].args[0]
