# storefront/services/notification.py

"""
Уведомление магазина об оплаченном заказе.

Письмо рендерится из jinja2-шаблона и отправляется через HTTP API почтового
сервиса (совместимый с Mailgun: form-data, basic auth "api:<key>").
"""

import os
import re
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from storefront.errors import NotificationError
from storefront.services.http import error_message

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")

env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)


def sanitize_product_name(name: Optional[str]) -> str:
    """Короткое название товара для письма: без "женская"/"футболка", sheert -> shirt."""
    if not name:
        return ""
    name = re.sub(r"женская", "", name, flags=re.IGNORECASE)
    name = re.sub(r"футболка", "", name, flags=re.IGNORECASE)
    name = re.sub(r"sheert", "shirt", name, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", name).strip()


def render_order_notification(order) -> str:
    template = env.get_template("order_notification.html")
    return template.render(
        order=order,
        items=[
            {
                "name": sanitize_product_name(item.product_name),
                "code": item.product_code,
                "quantity": item.quantity,
                "price": item.price,
                "size": item.size,
            }
            for item in order.items
        ],
    )


class Mailer:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        order_to: str,
        timeout: float = 30.0,
        log=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.order_to = order_to
        self.log = log
        self.http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings, log=None, transport=None) -> "Mailer":
        return cls(
            api_url=settings.MAIL_API_URL,
            api_key=settings.MAIL_API_KEY,
            sender=settings.MAIL_FROM,
            order_to=settings.MAIL_ORDER_TO,
            log=log,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.sender and self.order_to)

    async def aclose(self):
        await self.http.aclose()

    async def send(self, to_email: str, subject: str, html: str, text: str = "") -> dict:
        try:
            response = await self.http.post(
                self.api_url,
                auth=("api", self.api_key),
                data={
                    "from": self.sender,
                    "to": [to_email],
                    "subject": subject,
                    "html": html,
                    "text": text or subject,
                },
            )
        except httpx.TransportError as e:
            raise NotificationError(f"Почтовый сервис недоступен: {e!r}")

        if response.status_code >= 400:
            raise NotificationError(f"Почтовый сервис вернул {response.status_code}: {error_message(response)}")
        return response.json() if response.content else {}

    async def send_order_notification(self, order) -> Optional[dict]:
        """Письмо в магазин о новом оплаченном заказе. Без настроек пропускается."""
        if not self.configured:
            if self.log:
                await self.log.log_warning("mail", "Почта не настроена, уведомление не отправлено", {
                    "order_id": order.id,
                })
            return None

        html = render_order_notification(order)
        result = await self.send(
            self.order_to,
            f"Новый заказ #{order.id[:8]} на {order.total} ₽",
            html,
            text=f"Заказ {order.id} оплачен, сумма {order.total} ₽",
        )
        if self.log:
            await self.log.log_info("mail", "Уведомление о заказе отправлено", {"order_id": order.id})
        return result
