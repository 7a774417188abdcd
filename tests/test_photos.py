"""Tests for check-in and check-out photos."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from database.models import BookingPhoto, BookingStatus, PhotoCheckType, PhotoSide
from services.exceptions import ForbiddenError, InvalidInputError, InvalidTransitionError, NotFoundError


def _photo(booking, check_type, side):
    photo = MagicMock(spec=BookingPhoto)
    photo.booking_id = booking.id
    photo.check_type = check_type
    photo.side = side
    photo.file_url = f"https://files.example/{check_type.value}-{side.value}.jpg"
    return photo


ALL_SIDES = {side: f"https://files.example/{side.value}.jpg" for side in PhotoSide}


@pytest.mark.asyncio
async def test_check_out_rejected_before_activation(mock_session, sample_booking):
    sample_booking.status = BookingStatus.PAID

    with patch("services.photos.crud.get_booking", return_value=sample_booking), \
         patch("services.photos.crud.save_booking_photo") as mock_save:
        from services.photos import submit_photos

        with pytest.raises(InvalidTransitionError):
            await submit_photos(mock_session, sample_booking.id, sample_booking.user_id, "CHECK_OUT", ALL_SIDES)

    mock_save.assert_not_called()


@pytest.mark.asyncio
async def test_photos_for_foreign_booking(mock_session, sample_booking):
    sample_booking.status = BookingStatus.ACTIVE

    with patch("services.photos.crud.get_booking", return_value=sample_booking):
        from services.photos import submit_photos

        with pytest.raises(ForbiddenError):
            await submit_photos(mock_session, sample_booking.id, 999, "CHECK_OUT", ALL_SIDES)


@pytest.mark.asyncio
async def test_photos_for_unknown_booking(mock_session):
    with patch("services.photos.crud.get_booking", return_value=None):
        from services.photos import submit_photos

        with pytest.raises(NotFoundError):
            await submit_photos(mock_session, 1, 1, "CHECK_IN", ALL_SIDES)


@pytest.mark.asyncio
async def test_unknown_side_is_invalid(mock_session):
    from services.photos import submit_photos

    with pytest.raises(InvalidInputError):
        await submit_photos(mock_session, 1, 1, "CHECK_IN", {"ROOF": "https://files.example/roof.jpg"})


@pytest.mark.asyncio
async def test_partial_check_out_keeps_booking_active(mock_session, sample_booking):
    sample_booking.status = BookingStatus.ACTIVE
    saved = [_photo(sample_booking, PhotoCheckType.CHECK_OUT, PhotoSide.FRONT)]

    with patch("services.photos.crud.get_booking", return_value=sample_booking), \
         patch("services.photos.crud.save_booking_photo") as mock_save, \
         patch("services.photos.crud.get_booking_photos", return_value=saved), \
         patch("services.photos.bookings.update_status", new_callable=AsyncMock) as mock_update:
        from services.photos import submit_photos

        result = await submit_photos(
            mock_session, sample_booking.id, sample_booking.user_id,
            PhotoCheckType.CHECK_OUT, {"FRONT": "https://files.example/front.jpg"},
        )

    mock_save.assert_awaited_once()
    assert mock_save.call_args.kwargs["side"] == PhotoSide.FRONT
    mock_session.commit.assert_awaited_once()
    assert result.missing_sides == [PhotoSide.REAR, PhotoSide.LEFT, PhotoSide.RIGHT]
    assert result.booking is sample_booking
    mock_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_full_check_out_returns_booking(mock_session, sample_booking):
    sample_booking.status = BookingStatus.ACTIVE
    saved = [_photo(sample_booking, PhotoCheckType.CHECK_OUT, side) for side in PhotoSide]
    returned = MagicMock(status=BookingStatus.RETURNED)

    with patch("services.photos.crud.get_booking", return_value=sample_booking), \
         patch("services.photos.crud.save_booking_photo") as mock_save, \
         patch("services.photos.crud.get_booking_photos", return_value=saved), \
         patch("services.photos.bookings.update_status", new_callable=AsyncMock, return_value=returned) as mock_update:
        from services.photos import submit_photos

        result = await submit_photos(
            mock_session, sample_booking.id, sample_booking.user_id, "CHECK_OUT", ALL_SIDES
        )

    assert mock_save.await_count == 4
    mock_update.assert_awaited_once_with(mock_session, sample_booking.id, BookingStatus.RETURNED)
    assert result.booking is returned
    assert result.missing_sides == []


@pytest.mark.asyncio
async def test_full_check_in_does_not_change_status(mock_session, sample_booking):
    sample_booking.status = BookingStatus.PAID
    saved = [_photo(sample_booking, PhotoCheckType.CHECK_IN, side) for side in PhotoSide]

    with patch("services.photos.crud.get_booking", return_value=sample_booking), \
         patch("services.photos.crud.save_booking_photo"), \
         patch("services.photos.crud.get_booking_photos", return_value=saved), \
         patch("services.photos.bookings.update_status", new_callable=AsyncMock) as mock_update:
        from services.photos import submit_photos

        await submit_photos(mock_session, sample_booking.id, sample_booking.user_id, "CHECK_IN", ALL_SIDES)

    mock_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_compare_pairs_photos_by_side(mock_session, sample_booking):
    photos = [
        _photo(sample_booking, PhotoCheckType.CHECK_IN, PhotoSide.FRONT),
        _photo(sample_booking, PhotoCheckType.CHECK_OUT, PhotoSide.FRONT),
        _photo(sample_booking, PhotoCheckType.CHECK_IN, PhotoSide.LEFT),
    ]

    with patch("services.photos.crud.get_booking", return_value=sample_booking), \
         patch("services.photos.crud.get_booking_photos", return_value=photos):
        from services.photos import compare_photos

        pairs = await compare_photos(mock_session, sample_booking.id)

    by_side = {pair["side"]: pair for pair in pairs}
    assert len(pairs) == 4
    assert by_side[PhotoSide.FRONT]["checkIn"] == photos[0].file_url
    assert by_side[PhotoSide.FRONT]["checkOut"] == photos[1].file_url
    assert by_side[PhotoSide.LEFT]["checkOut"] is None
    assert by_side[PhotoSide.REAR] == {"side": PhotoSide.REAR, "checkIn": None, "checkOut": None}
