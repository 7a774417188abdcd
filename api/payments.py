"""Маршруты платежей и вебхук платёжного шлюза."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from api.schemas import PaymentCreate, PaymentCreated, PaymentOut, ok
from database.models import User
from services import payments
from services.exceptions import AuthError
from utils.logger import logger

router = APIRouter(prefix="/api/payments")


@router.post("", status_code=201)
async def create_payment(
    data: PaymentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await payments.create_payment(db, data.booking_id, user.id, data.type)
    return ok(
        PaymentCreated(
            payment_id=payment.id,
            payment_url=payment.payment_url,
            amount=payment.amount,
            type=payment.type,
            status=payment.status,
        )
    )


@router.get("/{payment_id}/status")
async def payment_status(
    payment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await payments.refresh_payment_status(db, payment_id, user.id)
    return ok(PaymentOut.model_validate(payment))


@router.post("/webhook", response_class=PlainTextResponse)
async def gateway_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Шлюз ждёт тело "OK", иначе повторяет уведомление."""
    try:
        payload = await request.json()
    except ValueError:
        raise AuthError("Malformed notification")
    if not isinstance(payload, dict):
        raise AuthError("Malformed notification")

    logger.info(
        f"Gateway notification: OrderId={payload.get('OrderId')} "
        f"PaymentId={payload.get('PaymentId')} Status={payload.get('Status')}"
    )
    await payments.handle_notification(db, payload)
    return PlainTextResponse("OK")
