"""Tests for Mini App initData verification and JWT sessions."""

import hashlib
import hmac
import json
import time
from urllib.parse import urlencode

import pytest
from unittest.mock import patch

from services.exceptions import AuthError
from services.telegram_auth import (
    authenticate_telegram,
    create_access_token,
    decode_access_token,
    parse_init_data,
    verify_init_data,
)

BOT_TOKEN = "123456:TEST-token"


def _sign(params: dict[str, str], bot_token: str = BOT_TOKEN) -> str:
    """Build initData the way Telegram does."""
    check_string = "\n".join(f"{k}={v}" for k, v in sorted(params.items()))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    signature = hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()
    return urlencode({**params, "hash": signature})


def _init_data(auth_date: int | None = None, **user) -> str:
    tg_user = {"id": 123456789, "first_name": "Test", "username": "testuser", **user}
    return _sign({
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAH",
        "user": json.dumps(tg_user, ensure_ascii=False),
    })


# initData, подписанная вне этого кода (openssl dgst -sha256 -hmac)
KNOWN_BOT_TOKEN = "5768337691:AAH5YkoiEuPk8-FZa32hStHTqXiLPtAEhx8"
KNOWN_HASH = "79b8f8e15febb25b7162c14824ba18004d075ebd6b5593c81b04611c4b19e7d7"
KNOWN_INIT_DATA = (
    "query_id=AAHdF6IQAAAAAN0XohDhrOrc"
    "&user=%7B%22id%22%3A279058397%2C%22first_name%22%3A%22Vladislav%22"
    "%2C%22last_name%22%3A%22Kibenko%22%2C%22username%22%3A%22vdkfrost%22"
    "%2C%22language_code%22%3A%22ru%22%7D"
    "&auth_date=1717000000"
    f"&hash={KNOWN_HASH}"
)


def test_known_init_data_vector():
    assert verify_init_data(KNOWN_INIT_DATA, KNOWN_BOT_TOKEN) is True


def test_known_init_data_vector_parses_user():
    user = parse_init_data(KNOWN_INIT_DATA, KNOWN_BOT_TOKEN, max_age=60, now=1717000030)

    assert user["id"] == 279058397
    assert user["first_name"] == "Vladislav"
    assert user["username"] == "vdkfrost"


def test_known_init_data_vector_with_other_hash():
    raw = KNOWN_INIT_DATA.replace(KNOWN_HASH, "0" * 64)

    assert verify_init_data(raw, KNOWN_BOT_TOKEN) is False


def test_valid_init_data():
    assert verify_init_data(_init_data(), BOT_TOKEN) is True


def test_wrong_bot_token():
    assert verify_init_data(_init_data(), "654321:OTHER") is False


def test_tampered_init_data():
    raw = _init_data().replace("testuser", "hacker")

    assert verify_init_data(raw, BOT_TOKEN) is False


def test_missing_hash():
    assert verify_init_data("auth_date=1&user=%7B%7D", BOT_TOKEN) is False


def test_parse_returns_user():
    user = parse_init_data(_init_data(first_name="Иван"), BOT_TOKEN)

    assert user["id"] == 123456789
    assert user["first_name"] == "Иван"


def test_parse_rejects_expired():
    raw = _init_data(auth_date=1_000_000)

    with pytest.raises(AuthError, match="expired"):
        parse_init_data(raw, BOT_TOKEN, max_age=3600, now=1_000_000 + 3601)


def test_parse_rejects_user_without_first_name():
    raw = _sign({"auth_date": str(int(time.time())), "user": json.dumps({"id": 1})})

    with pytest.raises(AuthError):
        parse_init_data(raw, BOT_TOKEN)


def test_parse_rejects_bad_signature():
    with pytest.raises(AuthError):
        parse_init_data(_init_data(), "654321:OTHER")


def test_token_roundtrip():
    assert decode_access_token(create_access_token(42)) == 42


def test_garbage_token_rejected():
    with pytest.raises(AuthError):
        decode_access_token("not-a-jwt")


@pytest.mark.asyncio
async def test_authenticate_creates_new_user(mock_session, sample_user):
    with patch("services.telegram_auth.settings.bot_token", BOT_TOKEN), \
         patch("services.telegram_auth.crud.get_user_by_telegram_id", return_value=None), \
         patch("services.telegram_auth.crud.create_user", return_value=sample_user) as mock_create:
        user, token = await authenticate_telegram(mock_session, _init_data())

    assert user is sample_user
    assert decode_access_token(token) == sample_user.id
    kwargs = mock_create.call_args.kwargs
    assert kwargs["telegram_id"] == 123456789
    assert kwargs["username"] == "testuser"


@pytest.mark.asyncio
async def test_authenticate_updates_changed_username(mock_session, sample_user):
    sample_user.username = "old_name"

    with patch("services.telegram_auth.settings.bot_token", BOT_TOKEN), \
         patch("services.telegram_auth.crud.get_user_by_telegram_id", return_value=sample_user), \
         patch("services.telegram_auth.crud.update_user", return_value=sample_user) as mock_update:
        await authenticate_telegram(mock_session, _init_data())

    mock_update.assert_awaited_once_with(mock_session, sample_user.id, username="testuser")
