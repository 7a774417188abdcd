"""QR-коды со ссылками на прицеп и точку выдачи в мини-приложении."""

import base64
from io import BytesIO

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import crud
from services.exceptions import NotFoundError

TRAILER = "trailer"
LOCATION = "location"


def build_deep_link(kind: str, object_id: int) -> str:
    """
    Ссылка, открывающая мини-приложение на нужном объекте.

    При заданном BOT_USERNAME это t.me-ссылка с startapp, иначе прямой URL
    веб-приложения.
    """
    if settings.bot_username:
        return f"https://t.me/{settings.bot_username}?startapp={kind}_{object_id}"
    return f"{settings.webapp_url.rstrip('/')}/{kind}s/{object_id}"


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer)
    return buffer.getvalue()


def to_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


async def trailer_qr(session: AsyncSession, trailer_id: int) -> tuple[str, bytes]:
    if not await crud.get_trailer(session, trailer_id):
        raise NotFoundError("Trailer not found")
    link = build_deep_link(TRAILER, trailer_id)
    return link, render_qr_png(link)


async def location_qr(session: AsyncSession, location_id: int) -> tuple[str, bytes]:
    if not await crud.get_location(session, location_id):
        raise NotFoundError("Location not found")
    link = build_deep_link(LOCATION, location_id)
    return link, render_qr_png(link)
