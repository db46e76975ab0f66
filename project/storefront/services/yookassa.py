# storefront/services/yookassa.py

import ipaddress
import uuid
from decimal import Decimal
from typing import Optional

import httpx

from storefront.errors import (
    PaymentAuthError,
    PaymentConfigError,
    PaymentNetworkError,
    PaymentRequestError,
)
from storefront.services.http import error_message, send_with_retry

YOOKASSA_API_URL = "https://api.yookassa.ru/v3"

DESCRIPTION_LIMIT = 128  # ограничение ЮКассы на description

# Адреса, с которых ЮКасса присылает уведомления
YOOKASSA_NETWORKS = [
    ipaddress.ip_network(net)
    for net in (
        "185.71.76.0/27",
        "185.71.77.0/27",
        "77.75.153.0/25",
        "77.75.154.128/25",
        "77.75.156.11/32",
        "77.75.156.35/32",
        "2a02:5180::/32",
    )
]


def is_yookassa_ip(host: Optional[str]) -> bool:
    if not host:
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(address in network for network in YOOKASSA_NETWORKS)


def format_amount(amount) -> str:
    return str(Decimal(amount).quantize(Decimal("0.01")))


class YooKassaClient:
    """
    Клиент REST API ЮКассы v3: создание платежа с редиректом и чтение статуса.
    Сетевые ошибки не повторяются автоматически (retries=0 по умолчанию),
    решение о повторе принимает покупатель.
    """

    def __init__(
        self,
        shop_id: str,
        secret_key: str,
        app_url: str = "http://localhost:3000",
        timeout: float = 15.0,
        retries: int = 0,
        log=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.shop_id = shop_id
        self.secret_key = secret_key
        self.app_url = app_url.rstrip("/")
        self.retries = retries
        self.log = log
        self.http = httpx.AsyncClient(
            base_url=YOOKASSA_API_URL,
            timeout=timeout,
            auth=(shop_id, secret_key),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, log=None, transport=None) -> "YooKassaClient":
        return cls(
            shop_id=settings.YOOKASSA_SHOP_ID,
            secret_key=settings.YOOKASSA_SECRET_KEY,
            app_url=settings.APP_URL,
            timeout=settings.YOOKASSA_TIMEOUT,
            retries=settings.YOOKASSA_RETRIES,
            log=log,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.shop_id and self.secret_key)

    def ensure_configured(self):
        if not self.configured:
            raise PaymentConfigError()

    async def aclose(self):
        await self.http.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        self.ensure_configured()
        try:
            response = await send_with_retry(
                self.http,
                method,
                path,
                retries=self.retries,
                log=self.log,
                target="yookassa",
                json=json,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise PaymentNetworkError(f"Таймаут платёжной системы: {e!r}")
        except httpx.TransportError as e:
            raise PaymentNetworkError(f"Платёжная система недоступна: {e!r}")

        if response.status_code in (401, 403):
            raise PaymentAuthError(f"Ошибка авторизации ЮКассы: {error_message(response)}")
        if response.status_code >= 500:
            raise PaymentNetworkError(f"ЮКасса вернула {response.status_code}")
        if response.status_code >= 400:
            raise PaymentRequestError(f"ЮКасса отклонила запрос: {error_message(response)}")
        return response.json()

    def build_payment(
        self,
        amount,
        order_id: str,
        description: str,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        return_url: Optional[str] = None,
    ) -> dict:
        value = format_amount(amount)
        description = description[:DESCRIPTION_LIMIT]

        payment = {
            "amount": {"value": value, "currency": "RUB"},
            "confirmation": {
                "type": "redirect",
                "return_url": return_url or f"{self.app_url}/payment/success?orderId={order_id}",
            },
            "capture": True,
            "description": description,
            "metadata": {"order_id": order_id},
        }

        if customer_email or customer_phone:
            customer = {}
            if customer_email:
                customer["email"] = customer_email
            if customer_phone:
                customer["phone"] = customer_phone
            payment["receipt"] = {
                "customer": customer,
                "items": [{
                    "description": description,
                    "quantity": "1",
                    "amount": {"value": value, "currency": "RUB"},
                    "vat_code": 1,  # без НДС
                    "payment_mode": "full_payment",
                    "payment_subject": "commodity",
                }],
            }
        return payment

    async def create_payment(self, amount, order_id: str, description: str, **kwargs) -> dict:
        """Создаёт платёж; в ответе id, status и confirmation.confirmation_url."""
        self.ensure_configured()
        payment = self.build_payment(amount, order_id, description, **kwargs)
        result = await self._request(
            "POST",
            "/payments",
            json=payment,
            headers={"Idempotence-Key": str(uuid.uuid4())},
        )
        if self.log:
            await self.log.log_info("yookassa", "Платёж создан", {
                "order_id": order_id,
                "payment_id": result.get("id"),
                "status": result.get("status"),
            })
        return result

    async def get_payment(self, payment_id: str) -> dict:
        return await self._request("GET", f"/payments/{payment_id}")
