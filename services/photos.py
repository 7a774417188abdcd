"""Фото прицепа при выдаче и возврате. Полный набор фото возврата закрывает аренду."""

from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.models import Booking, BookingPhoto, BookingStatus, PhotoCheckType, PhotoSide
from services import bookings
from services.exceptions import (
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from utils.logger import logger

# Статусы брони, в которых принимаются фото
ALLOWED_BOOKING_STATUSES = {
    PhotoCheckType.CHECK_IN: frozenset({BookingStatus.PAID, BookingStatus.ACTIVE}),
    PhotoCheckType.CHECK_OUT: frozenset({BookingStatus.ACTIVE}),
}


@dataclass
class PhotoCheckResult:
    booking: Booking
    photos: list[BookingPhoto]
    missing_sides: list[PhotoSide] = field(default_factory=list)


def _missing_sides(photos: list[BookingPhoto]) -> list[PhotoSide]:
    taken = {PhotoSide(photo.side) for photo in photos}
    return [side for side in PhotoSide if side not in taken]


async def submit_photos(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
    check_type: PhotoCheckType | str,
    photos: dict[PhotoSide | str, str],
) -> PhotoCheckResult:
    """
    Сохранить фото сторон прицепа.

    Когда у ACTIVE-брони есть фото возврата всех четырёх сторон,
    бронь переходит в RETURNED.
    """
    try:
        check_type = PhotoCheckType(check_type)
        photos = {PhotoSide(side): url for side, url in photos.items()}
    except ValueError as e:
        raise InvalidInputError(str(e)) from None
    if not photos:
        raise InvalidInputError("At least one photo is required")

    booking = await crud.get_booking(session, booking_id, load_relations=True)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.user_id != user_id:
        raise ForbiddenError("Booking belongs to another user")

    if booking.status not in ALLOWED_BOOKING_STATUSES[check_type]:
        raise InvalidTransitionError(
            f"{check_type.value} photos are not accepted for booking in "
            f"{BookingStatus(booking.status).value}"
        )

    for side, file_url in photos.items():
        await crud.save_booking_photo(
            session,
            booking_id=booking.id,
            user_id=user_id,
            check_type=check_type,
            side=side,
            file_url=file_url,
        )
    await session.commit()

    saved = await crud.get_booking_photos(session, booking.id, check_type)
    missing = _missing_sides(saved)
    logger.info(
        f"Booking {booking.id}: {len(photos)} {check_type.value} photo(s) saved, "
        f"missing {[side.value for side in missing]}"
    )

    if check_type == PhotoCheckType.CHECK_OUT and not missing:
        booking = await bookings.update_status(session, booking.id, BookingStatus.RETURNED)

    return PhotoCheckResult(booking=booking, photos=saved, missing_sides=missing)


async def list_photos(session: AsyncSession, booking_id: int, user_id: int) -> list[BookingPhoto]:
    booking = await bookings.get_user_booking(session, booking_id, user_id)
    return await crud.get_booking_photos(session, booking.id)


async def compare_photos(session: AsyncSession, booking_id: int) -> list[dict]:
    """Пары фото «выдача / возврат» по сторонам для осмотра администратором."""
    booking = await crud.get_booking(session, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")

    by_side: dict[PhotoSide, dict] = {
        side: {"side": side, "checkIn": None, "checkOut": None} for side in PhotoSide
    }
    for photo in await crud.get_booking_photos(session, booking_id):
        key = "checkIn" if photo.check_type == PhotoCheckType.CHECK_IN else "checkOut"
        by_side[PhotoSide(photo.side)][key] = photo.file_url

    return list(by_side.values())
