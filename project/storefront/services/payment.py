# storefront/services/payment.py

"""
Подтверждение оплаты: webhook ЮКассы и опрос статуса.

Оба входа сводятся к reconcile_payment(order_id, gateway_status), который
переводит заказ по таблице ALLOWED_TRANSITIONS условным UPDATE. Побочные
действия (корзина, отправление СДЭК, письмо) выполняет только запрос,
который выиграл переход.
"""

from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Request
from pydantic import ValidationError

from storefront.config import settings
from storefront.errors import (
    CarrierError,
    NotificationError,
    OrderNotFoundError,
    PaymentError,
    WebhookForbiddenError,
    WebhookMalformedError,
    WebhookOrderMissingError,
)
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.schemas.order import OrderStatusOut
from storefront.schemas.payment import WebhookNotification, WebhookResponse
from storefront.services.order import (
    find_order_for_payment,
    get_order,
    record_shipment,
    transition_order,
)
from storefront.services.yookassa import is_yookassa_ip

# событие ЮКассы -> новый статус платежа
EVENT_STATUSES = {
    "payment.succeeded": PaymentStatus.SUCCEEDED.value,
    "payment.waiting_for_capture": PaymentStatus.WAITING_FOR_CAPTURE.value,
    "payment.canceled": PaymentStatus.CANCELED.value,
    "refund.succeeded": PaymentStatus.REFUNDED.value,
}

# из какого статуса платежа в какие можно перейти
ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING.value: {
        PaymentStatus.WAITING_FOR_CAPTURE.value,
        PaymentStatus.SUCCEEDED.value,
        PaymentStatus.CANCELED.value,
    },
    PaymentStatus.WAITING_FOR_CAPTURE.value: {
        PaymentStatus.SUCCEEDED.value,
        PaymentStatus.CANCELED.value,
    },
    PaymentStatus.SUCCEEDED.value: {PaymentStatus.REFUNDED.value},
    PaymentStatus.CANCELED.value: set(),
    PaymentStatus.REFUNDED.value: set(),
}

# статус заказа при новом статусе платежа; waiting_for_capture статус заказа не меняет
ORDER_STATUS_FOR_PAYMENT = {
    PaymentStatus.SUCCEEDED.value: OrderStatus.PAID.value,
    PaymentStatus.CANCELED.value: OrderStatus.PAYMENT_FAILED.value,
    PaymentStatus.REFUNDED.value: OrderStatus.REFUNDED.value,
}


# ────────────── Результат сверки ──────────────
@dataclass(frozen=True)
class Unchanged:
    order_id: str
    payment_status: str
    reason: str


@dataclass(frozen=True)
class Transitioned:
    order_id: str
    from_status: str
    to_status: str


@dataclass(frozen=True)
class ReconcileError:
    order_id: str
    code: str
    message: str


ReconcileResult = Union[Unchanged, Transitioned, ReconcileError]


async def reconcile_payment(
    request: Request,
    order_id: str,
    gateway_status: Optional[str],
    payment_id: Optional[str] = None,
) -> ReconcileResult:
    """
    Приводит заказ к статусу платежа из ЮКассы.

    Переход выполняется, только если он есть в ALLOWED_TRANSITIONS и в базе
    всё ещё тот статус, который был прочитан. При succeeded корзина очищается
    в той же транзакции, затем создаётся отправление и отправляется письмо.
    """
    db = request.state.db
    log = request.app.state.log

    if gateway_status not in ALLOWED_TRANSITIONS:
        return ReconcileError(order_id, "unknown_status", f"Неизвестный статус платежа: {gateway_status}")

    order = await get_order(db, order_id)
    if order is None:
        return ReconcileError(order_id, "order_not_found", "Заказ не найден")

    current = order.payment_status
    if gateway_status not in ALLOWED_TRANSITIONS.get(current, set()):
        return Unchanged(order_id, current, "already_applied" if gateway_status == current else "not_allowed")

    user_id = order.user_id
    succeeded = gateway_status == PaymentStatus.SUCCEEDED.value
    won = await transition_order(
        db,
        order_id,
        expected_payment_status=current,
        payment_status=gateway_status,
        status=ORDER_STATUS_FOR_PAYMENT.get(gateway_status, order.status),
        payment_id=payment_id if not order.payment_id else None,
        clear_cart_for=user_id if succeeded else None,
    )
    if not won:
        # другой запрос успел перевести заказ раньше
        await log.log_info("payment", "Переход уже выполнен другим запросом", {
            "order_id": order_id,
            "expected": current,
            "target": gateway_status,
        })
        return Unchanged(order_id, gateway_status, "concurrent")

    await log.log_info("payment", "Статус заказа обновлён", {
        "order_id": order_id,
        "from": current,
        "to": gateway_status,
    })

    if succeeded:
        await run_paid_side_effects(request, order_id)

    return Transitioned(order_id, current, gateway_status)


# ────────────── Побочные действия оплаты ──────────────
def shipment_items(order: Order) -> list[dict]:
    return [
        {
            "name": item.product_name,
            "ware_key": item.product_code or item.product_id or item.id,
            "cost": item.price,
            "weight": item.weight or settings.DEFAULT_ITEM_WEIGHT,
            "amount": item.quantity,
        }
        for item in order.items
    ]


async def create_shipment_for_order(request: Request, order: Order) -> Optional[str]:
    """
    Регистрирует заказ в СДЭК. Возвращает uuid отправления или None,
    если регистрация не нужна или не получилась (ошибка только логируется).
    """
    log = request.app.state.log
    cdek = request.app.state.cdek

    if order.carrier_order_uuid:
        return order.carrier_order_uuid
    if not order.delivery_tariff_code:
        await log.log_warning("payment", "Тариф СДЭК не выбран, отправление не создано", {"order_id": order.id})
        return None
    if not cdek.configured:
        await log.log_warning("payment", "СДЭК не настроен, отправление не создано", {"order_id": order.id})
        return None

    try:
        response = await cdek.create_shop_order(
            order_number=order.id,
            tariff_code=order.delivery_tariff_code,
            recipient_name=order.recipient_name or "",
            recipient_phone=order.phone or "",
            items=shipment_items(order),
            recipient_email=order.email,
            delivery_point_code=order.delivery_point_code if order.delivery_type != "door" else None,
            delivery_city=order.delivery_city,
            delivery_city_code=order.delivery_city_code,
            delivery_address=order.address,
        )
    except CarrierError as e:
        await log.log_error("payment", "Не удалось создать отправление СДЭК", {
            "order_id": order.id,
            "code": e.code,
            "error": e.message,
        })
        return None

    entity = (response or {}).get("entity") or {}
    carrier_uuid = entity.get("uuid")
    if not carrier_uuid:
        await log.log_warning("payment", "СДЭК не вернул uuid отправления", {
            "order_id": order.id,
            "response": response,
        })
        return None

    await record_shipment(request.state.db, order.id, carrier_uuid, entity.get("cdek_number"))
    return carrier_uuid


async def run_paid_side_effects(request: Request, order_id: str):
    log = request.app.state.log
    order = await get_order(request.state.db, order_id)

    await create_shipment_for_order(request, order)

    try:
        await request.app.state.mailer.send_order_notification(order)
    except NotificationError as e:
        await log.log_error("payment", "Уведомление о заказе не отправлено", {
            "order_id": order_id,
            "error": e.message,
        })


# ────────────── Webhook ──────────────
def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def parse_notification(request: Request) -> WebhookNotification:
    try:
        body = await request.json()
    except ValueError:
        raise WebhookMalformedError()
    try:
        return WebhookNotification.model_validate(body)
    except ValidationError:
        raise WebhookMalformedError()


async def handle_webhook_service(request: Request) -> WebhookResponse:
    """
    Уведомление ЮКассы: {"type": "notification", "event": ..., "object": {...}}.

    - неизвестное событие: 200, ignored
    - заказ не найден ни по id платежа, ни по metadata.order_id: 404, ЮКасса повторит
    - иначе reconcile_payment
    """
    log = request.app.state.log

    if settings.YOOKASSA_CHECK_IP:
        ip = client_ip(request)
        if not is_yookassa_ip(ip):
            await log.log_warning("webhook", "Уведомление с чужого адреса", {"ip": ip})
            raise WebhookForbiddenError()

    notification = await parse_notification(request)
    event = notification.event
    payment = notification.object

    # у возврата id это id возврата, платёж лежит в payment_id
    is_refund = event.startswith("refund.")
    payment_id = payment.payment_id if is_refund else payment.id
    order_id = payment.metadata.get("order_id")

    await log.log_info("webhook", "Уведомление получено", {
        "event": event,
        "payment_id": payment_id,
        "order_id": order_id,
    })

    gateway_status = EVENT_STATUSES.get(event)
    if gateway_status is None:
        await log.log_info("webhook", "Событие проигнорировано", {"event": event, "payment_id": payment_id})
        return WebhookResponse(result="ignored")

    order = await find_order_for_payment(request.state.db, payment_id, order_id)
    if order is None:
        await log.log_error("webhook", "Заказ не найден", {
            "event": event,
            "payment_id": payment_id,
            "order_id": order_id,
        })
        raise WebhookOrderMissingError()

    found_order_id = order.id
    result = await reconcile_payment(
        request,
        found_order_id,
        gateway_status,
        payment_id=None if is_refund else payment_id,
    )

    if isinstance(result, ReconcileError):
        await log.log_error("webhook", "Сверка платежа не выполнена", {
            "event": event,
            "payment_id": payment_id,
            "order_id": found_order_id,
            "code": result.code,
            "error": result.message,
        })
        raise WebhookOrderMissingError(result.message)

    if isinstance(result, Unchanged):
        await log.log_info("webhook", "Статус не изменён", {
            "event": event,
            "order_id": found_order_id,
            "payment_status": result.payment_status,
            "reason": result.reason,
        })
        return WebhookResponse(result="unchanged", order_id=found_order_id, payment_status=result.payment_status)

    return WebhookResponse(result="transitioned", order_id=found_order_id, payment_status=result.to_status)


# ────────────── Опрос статуса ──────────────
async def poll_payment_status_service(order_id: str, request: Request) -> OrderStatusOut:
    """
    Статус заказа для страницы возврата из ЮКассы.
    Пока платёж локально pending, статус перечитывается из ЮКассы и сверяется
    так же, как в webhook.
    """
    db = request.state.db
    log = request.app.state.log

    order = await get_order(db, order_id)
    if order is None:
        raise OrderNotFoundError()

    if order.payment_status == PaymentStatus.PENDING.value and order.payment_id:
        payment_id = order.payment_id
        try:
            payment = await request.app.state.yookassa.get_payment(payment_id)
        except PaymentError as e:
            await log.log_warning("payment", "Статус платежа не получен, отдаём локальный", {
                "order_id": order_id,
                "payment_id": payment_id,
                "code": e.code,
                "error": e.message,
            })
        else:
            result = await reconcile_payment(request, order_id, payment.get("status"))
            if isinstance(result, ReconcileError):
                await log.log_warning("payment", "Сверка платежа не выполнена", {
                    "order_id": order_id,
                    "payment_id": payment_id,
                    "code": result.code,
                    "error": result.message,
                })
            order = await get_order(db, order_id)

    return OrderStatusOut(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        total=order.total,
    )
