"""Пользовательские маршруты: авторизация, каталог, брони, фото, документы, профиль."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from api.schemas import (
    AuthOut,
    BookingCreate,
    BookingCreated,
    BookingOut,
    DocumentIn,
    DocumentOut,
    LocationOut,
    PhotoCheckOut,
    PhotoOut,
    PhotoSubmit,
    ProfileUpdate,
    QrOut,
    QuoteOut,
    QuoteRequest,
    TelegramAuthRequest,
    TrailerOut,
    UserOut,
    VerificationOut,
    ok,
)
from database import crud
from database.models import PhoneVerificationStatus, User
from services import bookings, documents, photos, qr
from services.exceptions import NotFoundError, UpstreamError
from services.notifications import request_phone
from services.telegram_auth import authenticate_telegram

router = APIRouter(prefix="/api")


# ============== AUTH ==============

@router.post("/auth/telegram")
async def auth_telegram(data: TelegramAuthRequest, db: AsyncSession = Depends(get_db)):
    user, token = await authenticate_telegram(db, data.init_data)
    return ok(AuthOut(user=UserOut.model_validate(user), token=token))


# ============== CATALOGUE ==============

@router.get("/trailers")
async def list_trailers(
    location_id: int | None = Query(default=None, alias="locationId"),
    db: AsyncSession = Depends(get_db),
):
    trailers = await crud.get_all_trailers(db, location_id=location_id)
    return ok([TrailerOut.model_validate(t) for t in trailers])


@router.get("/trailers/{trailer_id}")
async def get_trailer(trailer_id: int, db: AsyncSession = Depends(get_db)):
    trailer = await crud.get_trailer(db, trailer_id)
    if not trailer:
        raise NotFoundError("Trailer not found")
    return ok(TrailerOut.model_validate(trailer))


@router.get("/locations")
async def list_locations(db: AsyncSession = Depends(get_db)):
    locations = await crud.get_all_locations(db)
    return ok([LocationOut.model_validate(loc) for loc in locations])


@router.post("/quote")
async def quote(data: QuoteRequest, db: AsyncSession = Depends(get_db)):
    result = await bookings.get_quote(
        db,
        trailer_id=data.trailer_id,
        start_time=data.start_time,
        end_time=data.end_time,
        rental_type=data.rental_type,
        pickup=data.additional_services.pickup,
    )
    return ok(QuoteOut.model_validate(result))


# ============== BOOKINGS ==============

@router.post("/bookings", status_code=201)
async def create_booking(
    data: BookingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await bookings.create_booking(
        db,
        user_id=user.id,
        trailer_id=data.trailer_id,
        start_time=data.start_time,
        end_time=data.end_time,
        rental_type=data.rental_type,
        pickup=data.additional_services.pickup,
    )
    return ok(
        BookingCreated(
            id=booking.id,
            status=booking.status,
            total_amount=booking.total,
            deposit_amount=booking.deposit,
        ),
        message="Booking created",
    )


@router.get("/bookings")
async def list_bookings(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    items = await bookings.list_user_bookings(db, user.id)
    return ok([BookingOut.model_validate(b) for b in items])


@router.get("/bookings/{booking_id}")
async def get_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await bookings.get_user_booking(db, booking_id, user.id)
    return ok(BookingOut.model_validate(booking))


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await bookings.cancel_booking(db, booking_id, user.id)
    return ok(BookingOut.model_validate(booking), message="Booking cancelled")


@router.post("/bookings/{booking_id}/photos")
async def submit_booking_photos(
    booking_id: int,
    data: PhotoSubmit,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await photos.submit_photos(
        db,
        booking_id=booking_id,
        user_id=user.id,
        check_type=data.check_type,
        photos=data.photos,
    )
    return ok(PhotoCheckOut(
        booking_status=result.booking.status,
        photos=[PhotoOut.model_validate(p) for p in result.photos],
        missing_sides=result.missing_sides,
    ))


@router.get("/bookings/{booking_id}/photos")
async def list_booking_photos(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await photos.list_photos(db, booking_id, user.id)
    return ok([PhotoOut.model_validate(p) for p in items])


# ============== PROFILE ==============

@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return ok(UserOut.model_validate(user))


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if changes:
        user = await crud.update_user(db, user.id, **changes)
    return ok(UserOut.model_validate(user))


@router.post("/phone/request")
async def phone_request(user: User = Depends(get_current_user)):
    if user.phone_verification_status == PhoneVerificationStatus.VERIFIED:
        return ok({"alreadyVerified": True, "sent": False})

    if not await request_phone(user):
        raise UpstreamError("Could not send phone request via Telegram")
    return ok({"alreadyVerified": False, "sent": True}, message="Check the bot chat to share your phone")


# ============== DOCUMENTS ==============

@router.post("/documents", status_code=201)
async def upload_document(
    data: DocumentIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    document = await documents.submit_document(
        db,
        user,
        doc_type=data.type,
        file_url=data.file_url,
        mime_type=data.mime_type,
        file_name=data.file_name,
    )
    return ok(DocumentOut.model_validate(document), message="Document sent for review")


@router.get("/documents")
async def get_documents(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    verification = await documents.get_verification(db, user)
    return ok(VerificationOut.model_validate(verification))


# ============== QR ==============

def _qr_response(link: str, png: bytes, image_format: str):
    if image_format == "png":
        return Response(content=png, media_type="image/png")
    return ok(QrOut(link=link, image=qr.to_data_url(png)))


@router.get("/qr/trailer/{trailer_id}")
async def trailer_qr(
    trailer_id: int,
    image_format: str = Query(default="json", alias="format", pattern="^(json|png)$"),
    db: AsyncSession = Depends(get_db),
):
    link, png = await qr.trailer_qr(db, trailer_id)
    return _qr_response(link, png, image_format)


@router.get("/qr/location/{location_id}")
async def location_qr(
    location_id: int,
    image_format: str = Query(default="json", alias="format", pattern="^(json|png)$"),
    db: AsyncSession = Depends(get_db),
):
    link, png = await qr.location_qr(db, location_id)
    return _qr_response(link, png, image_format)
