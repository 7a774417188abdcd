"""Админские маршруты: каталог, брони, пользователи, документы, платежи, поддержка, отчёты."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, require_admin
from api.schemas import (
    BookingOut,
    BookingStatusUpdate,
    ChatOut,
    DocumentOut,
    DocumentReview,
    LocationIn,
    LocationOut,
    LocationUpdate,
    MessageIn,
    MessageOut,
    PaymentOut,
    PhotoPair,
    TrailerIn,
    TrailerOut,
    TrailerUpdate,
    UserOut,
    VerifyRequest,
    ok,
)
from database import crud
from database.models import BookingStatus, ChatStatus, PaymentStatus, User
from reports.generator import generate_report
from services import bookings, documents, photos, support
from services.exceptions import ConflictError, NotFoundError
from services.notifications import notify_verification_status
from utils.logger import logger

router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ============== TRAILERS ==============

@router.get("/trailers")
async def list_trailers(db: AsyncSession = Depends(get_db)):
    trailers = await crud.get_all_trailers(db)
    return ok([TrailerOut.model_validate(t) for t in trailers])


@router.post("/trailers", status_code=201)
async def create_trailer(data: TrailerIn, db: AsyncSession = Depends(get_db)):
    if data.location_id is not None and not await crud.get_location(db, data.location_id):
        raise NotFoundError("Location not found")
    trailer = await crud.create_trailer(db, **data.model_dump())
    return ok(TrailerOut.model_validate(trailer), message="Trailer created")


@router.put("/trailers/{trailer_id}")
async def update_trailer(trailer_id: int, data: TrailerUpdate, db: AsyncSession = Depends(get_db)):
    changes = data.model_dump(exclude_unset=True)
    if changes.get("location_id") is not None and not await crud.get_location(db, changes["location_id"]):
        raise NotFoundError("Location not found")
    trailer = await crud.update_trailer(db, trailer_id, **changes)
    if not trailer:
        raise NotFoundError("Trailer not found")
    return ok(TrailerOut.model_validate(trailer), message="Trailer updated")


@router.delete("/trailers/{trailer_id}")
async def delete_trailer(trailer_id: int, db: AsyncSession = Depends(get_db)):
    if await crud.count_trailer_bookings(db, trailer_id):
        raise ConflictError("Trailer has bookings; set status MAINTENANCE instead")
    if not await crud.delete_trailer(db, trailer_id):
        raise NotFoundError("Trailer not found")
    return ok(message="Trailer deleted")


# ============== LOCATIONS ==============

@router.get("/locations")
async def list_locations(db: AsyncSession = Depends(get_db)):
    locations = await crud.get_all_locations(db)
    return ok([LocationOut.model_validate(loc) for loc in locations])


@router.post("/locations", status_code=201)
async def create_location(data: LocationIn, db: AsyncSession = Depends(get_db)):
    location = await crud.create_location(db, **data.model_dump())
    return ok(LocationOut.model_validate(location), message="Location created")


@router.put("/locations/{location_id}")
async def update_location(location_id: int, data: LocationUpdate, db: AsyncSession = Depends(get_db)):
    location = await crud.update_location(db, location_id, **data.model_dump(exclude_unset=True))
    if not location:
        raise NotFoundError("Location not found")
    return ok(LocationOut.model_validate(location), message="Location updated")


@router.delete("/locations/{location_id}")
async def delete_location(location_id: int, db: AsyncSession = Depends(get_db)):
    if not await crud.delete_location(db, location_id):
        raise NotFoundError("Location not found")
    return ok(message="Location deleted")


# ============== BOOKINGS ==============

@router.get("/bookings")
async def list_bookings(
    status: BookingStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    items = await crud.get_bookings(db, status=status)
    return ok([BookingOut.model_validate(b) for b in items])


@router.put("/bookings/{booking_id}/status")
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    booking = await bookings.update_status(db, booking_id, data.status)
    return ok(BookingOut.model_validate(booking), message="Booking status updated")


@router.get("/bookings/{booking_id}/photos")
async def booking_photos(booking_id: int, db: AsyncSession = Depends(get_db)):
    pairs = await photos.compare_photos(db, booking_id)
    return ok([PhotoPair.model_validate(pair) for pair in pairs])


# ============== USERS ==============

@router.get("/users")
async def list_users(db: AsyncSession = Depends(get_db)):
    users = await crud.get_all_users(db)
    return ok([UserOut.model_validate(u) for u in users])


@router.get("/users/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await crud.get_user(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    user_bookings = await crud.get_user_bookings(db, user_id)
    return ok({
        "user": UserOut.model_validate(user),
        "bookings": [BookingOut.model_validate(b) for b in user_bookings],
    })


@router.put("/users/{user_id}/verify")
async def verify_user(user_id: int, data: VerifyRequest, db: AsyncSession = Depends(get_db)):
    user = await crud.update_user(
        db,
        user_id,
        verification_status=data.status,
        verification_comment=data.comment,
    )
    if not user:
        raise NotFoundError("User not found")

    logger.info(f"User {user_id} verification: {data.status.value}")
    notify_verification_status(user)
    return ok(UserOut.model_validate(user), message="Verification status updated")


# ============== DOCUMENTS ==============

@router.get("/documents/pending")
async def pending_documents(db: AsyncSession = Depends(get_db)):
    items = await documents.list_pending(db)
    return ok([DocumentOut.model_validate(d) for d in items])


@router.put("/documents/{document_id}")
async def review_document(
    document_id: int,
    data: DocumentReview,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    document = await documents.review_document(db, document_id, admin, data.status, data.comment)
    return ok(DocumentOut.model_validate(document), message="Document reviewed")


# ============== PAYMENTS / STATS ==============

@router.get("/payments")
async def list_payments(
    status: PaymentStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    items = await crud.get_payments(db, status=status)
    return ok([PaymentOut.model_validate(p) for p in items])


@router.get("/stats")
async def stats(db: AsyncSession = Depends(get_db)):
    return ok(await crud.get_stats(db))


# ============== SUPPORT ==============

@router.get("/support/chats")
async def list_support_chats(
    status: ChatStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    chats = await support.list_admin_chats(db, status)
    return ok([ChatOut.model_validate(chat) for chat in chats])


@router.get("/support/chats/{chat_id}")
async def get_support_chat(chat_id: int, db: AsyncSession = Depends(get_db)):
    chat = await support.get_admin_chat(db, chat_id)
    return ok(ChatOut.model_validate(chat))


@router.post("/support/chats/{chat_id}/messages", status_code=201)
async def reply_support_chat(
    chat_id: int,
    data: MessageIn,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    message = await support.admin_reply(db, chat_id, admin, data.text)
    return ok(MessageOut.model_validate(message))


@router.post("/support/chats/{chat_id}/assign")
async def assign_support_chat(
    chat_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    chat = await support.assign_chat(db, chat_id, admin)
    return ok(ChatOut.model_validate(chat), message="Chat assigned")


@router.post("/support/chats/{chat_id}/close")
async def close_support_chat(chat_id: int, db: AsyncSession = Depends(get_db)):
    chat = await support.close_chat(db, chat_id)
    return ok(ChatOut.model_validate(chat), message="Chat closed")


# ============== REPORTS ==============

@router.get("/reports/bookings")
async def bookings_report(
    days: int = Query(default=30, ge=1, le=366),
    trailer_id: int | None = Query(default=None, alias="trailerId"),
    user_id: int | None = Query(default=None, alias="userId"),
    db: AsyncSession = Depends(get_db),
):
    file_path = await generate_report(db, days=days, trailer_id=trailer_id, user_id=user_id)
    if file_path is None:
        raise NotFoundError("No bookings for the selected period")
    return FileResponse(file_path, media_type=XLSX_MEDIA_TYPE, filename=file_path.name)
