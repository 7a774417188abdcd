"""Клиент эквайринга Tinkoff (API v2): Init, GetState, Cancel, Confirm."""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from config import settings
from services.exceptions import UpstreamError
from utils.logger import logger

PRODUCTION_URL = "https://securepay.tinkoff.ru/v2"
SANDBOX_URL = "https://rest-api-test.tinkoff.ru/v2"

DEFAULT_TIMEOUT = 10.0


@dataclass
class GatewayResponse:
    """Ответ шлюза в нормализованном виде."""

    payment_id: str | None
    status: str | None
    payment_url: str | None = None
    amount_kopecks: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _token_value(value: Any) -> str:
    # Шлюз считает токен от JSON-представления: true/false в нижнем регистре
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def generate_token(params: dict[str, Any], secret_key: str) -> str:
    """
    Подпись запроса: SHA-256 от значений скалярных параметров
    вместе с Password=secret, отсортированных по ключу. Token не участвует.
    """
    values = {
        key: value for key, value in params.items()
        if key != "Token"
        and value is not None
        and value != ""
        and not isinstance(value, (dict, list))
    }
    values["Password"] = secret_key

    concatenated = "".join(_token_value(values[key]) for key in sorted(values))
    return hashlib.sha256(concatenated.encode("utf-8")).hexdigest()


def rub_to_kopecks(amount_rub: int) -> int:
    return int(amount_rub) * 100


class TinkoffClient:
    """
    Тонкая обёртка над REST API шлюза.

    Без ключей терминала (или с TINKOFF_FORCE_MOCK) работает в mock-режиме:
    платёж сразу считается подтверждённым, ссылка ведёт на страницу Mini App.
    """

    def __init__(
        self,
        terminal_key: str | None = None,
        secret_key: str | None = None,
        sandbox: bool | None = None,
        mock: bool | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.terminal_key = settings.tinkoff_terminal_key if terminal_key is None else terminal_key
        self.secret_key = settings.tinkoff_secret_key if secret_key is None else secret_key
        sandbox = settings.tinkoff_sandbox if sandbox is None else sandbox
        self.base_url = SANDBOX_URL if sandbox else PRODUCTION_URL
        self.mock = (not settings.tinkoff_enabled) if mock is None else mock
        self.timeout = timeout

        if self.mock:
            logger.warning("Tinkoff credentials not configured, using mock mode")

    def verify_notification(self, payload: dict[str, Any]) -> bool:
        """Проверить подпись уведомления от шлюза."""
        token = payload.get("Token")
        if not token:
            return False
        if not self.secret_key:
            # Нечем проверить подпись: принимаем только в mock-режиме
            return self.mock
        expected = generate_token(payload, self.secret_key)
        return hmac.compare_digest(expected, str(token))

    async def _post(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        body = {"TerminalKey": self.terminal_key, **params}
        body["Token"] = generate_token(body, self.secret_key)

        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException:
            logger.error(f"Tinkoff {method} timeout")
            raise UpstreamError(f"Payment gateway timeout ({method})")
        except httpx.HTTPStatusError as e:
            logger.error(f"Tinkoff {method} HTTP error: {e.response.status_code} {e.response.text}")
            raise UpstreamError(f"Payment gateway returned HTTP {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Tinkoff {method} request failed: {e}")
            raise UpstreamError(f"Payment gateway request failed ({method})")

        if not data.get("Success"):
            logger.error(
                f"Tinkoff {method} rejected: ErrorCode={data.get('ErrorCode')} "
                f"Message={data.get('Message')} Details={data.get('Details')}"
            )
            raise UpstreamError(data.get("Message") or f"Payment gateway rejected {method}")

        logger.info(f"Tinkoff {method}: PaymentId={data.get('PaymentId')} Status={data.get('Status')}")
        return data

    @staticmethod
    def _to_response(data: dict[str, Any]) -> GatewayResponse:
        payment_id = data.get("PaymentId")
        return GatewayResponse(
            payment_id=str(payment_id) if payment_id is not None else None,
            status=data.get("Status"),
            payment_url=data.get("PaymentURL"),
            amount_kopecks=data.get("Amount"),
            raw=data,
        )

    async def init_payment(
        self,
        order_id: str,
        amount_rub: int,
        description: str,
        customer_key: str,
        data: dict[str, str] | None = None,
        two_stage: bool = False,
    ) -> GatewayResponse:
        """Init: создать платёж. two_stage=True: блокировка средств (PayType=T)."""
        if self.mock:
            return self._mock_init(order_id, amount_rub, two_stage)

        params: dict[str, Any] = {
            "Amount": rub_to_kopecks(amount_rub),
            "OrderId": order_id,
            "Description": description,
            "CustomerKey": customer_key,
            "Language": "ru",
            "NotificationURL": f"{settings.backend_url}/api/payments/webhook",
            "SuccessURL": f"{settings.webapp_url}/payment/success",
            "FailURL": f"{settings.webapp_url}/payment/failed",
        }
        if two_stage:
            params["PayType"] = "T"
        if data:
            params["DATA"] = data

        return self._to_response(await self._post("Init", params))

    async def get_state(self, payment_id: str) -> GatewayResponse:
        if self.mock:
            return GatewayResponse(payment_id=payment_id, status="CONFIRMED", raw={"Mock": True})
        return self._to_response(await self._post("GetState", {"PaymentId": payment_id}))

    async def cancel(self, payment_id: str, amount_rub: int | None = None) -> GatewayResponse:
        """Cancel: снять блокировку или вернуть списанный платёж."""
        if self.mock:
            logger.info(f"Mock cancel for payment {payment_id}")
            return GatewayResponse(payment_id=payment_id, status="CANCELED", raw={"Mock": True})

        params: dict[str, Any] = {"PaymentId": payment_id}
        if amount_rub is not None:
            params["Amount"] = rub_to_kopecks(amount_rub)
        return self._to_response(await self._post("Cancel", params))

    async def confirm(self, payment_id: str, amount_rub: int | None = None) -> GatewayResponse:
        """Confirm: списать заблокированные средства."""
        if self.mock:
            logger.info(f"Mock confirm for payment {payment_id}")
            return GatewayResponse(payment_id=payment_id, status="CONFIRMED", raw={"Mock": True})

        params: dict[str, Any] = {"PaymentId": payment_id}
        if amount_rub is not None:
            params["Amount"] = rub_to_kopecks(amount_rub)
        return self._to_response(await self._post("Confirm", params))

    def _mock_init(self, order_id: str, amount_rub: int, two_stage: bool) -> GatewayResponse:
        prefix = "mock_hold" if two_stage else "mock_payment"
        payment_id = f"{prefix}_{time.time_ns()}"
        logger.info(f"Creating mock payment {payment_id} for order {order_id}")
        return GatewayResponse(
            payment_id=payment_id,
            status="NEW",
            payment_url=f"{settings.webapp_url}/payment/mock?paymentId={payment_id}",
            amount_kopecks=rub_to_kopecks(amount_rub),
            raw={"Mock": True, "OrderId": order_id},
        )


tinkoff_client = TinkoffClient()
