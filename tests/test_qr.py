"""Tests for QR deep links."""

import pytest
from unittest.mock import patch

from services.exceptions import NotFoundError
from services.qr import build_deep_link, render_qr_png, to_data_url

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_deep_link_through_bot():
    with patch("services.qr.settings.bot_username", "trailer_rent_bot"):
        assert build_deep_link("trailer", 10) == "https://t.me/trailer_rent_bot?startapp=trailer_10"


def test_deep_link_falls_back_to_webapp():
    with patch("services.qr.settings.bot_username", ""), \
         patch("services.qr.settings.webapp_url", "https://app.example/"):
        assert build_deep_link("location", 3) == "https://app.example/locations/3"


def test_render_png():
    png = render_qr_png("https://t.me/trailer_rent_bot?startapp=trailer_10")

    assert png.startswith(PNG_SIGNATURE)
    assert to_data_url(png).startswith("data:image/png;base64,iVBORw0KGgo")


@pytest.mark.asyncio
async def test_trailer_qr(mock_session, sample_trailer):
    with patch("services.qr.crud.get_trailer", return_value=sample_trailer), \
         patch("services.qr.settings.bot_username", "trailer_rent_bot"):
        from services.qr import trailer_qr

        link, png = await trailer_qr(mock_session, sample_trailer.id)

    assert link.endswith(f"startapp=trailer_{sample_trailer.id}")
    assert png.startswith(PNG_SIGNATURE)


@pytest.mark.asyncio
async def test_location_qr_unknown(mock_session):
    with patch("services.qr.crud.get_location", return_value=None):
        from services.qr import location_qr

        with pytest.raises(NotFoundError):
            await location_qr(mock_session, 99)
