# storefront/services/checkout.py

"""
Оформление заказа.

Последовательность: пользователь -> корзина -> сумма товаров -> скидка ->
доставка -> итог -> заказ (awaiting_payment) -> платёж ЮКассы -> ссылка на оплату.
Корзина здесь не очищается, это делает подтверждение оплаты.
"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from fastapi import Request

from storefront.config import settings
from storefront.errors import (
    CarrierApiError,
    CarrierTransientError,
    EmptyCartError,
    InvalidTotalError,
    PaymentError,
    UnauthorizedError,
)
from storefront.models.cart import CartItem
from storefront.schemas.checkout import CheckoutRequest, CheckoutResponse
from storefront.services.cdek import PACKAGE_HEIGHT, PACKAGE_LENGTH, PACKAGE_WIDTH
from storefront.services.order import attach_payment, create_order_from_cart, load_cart

MOSCOW_CITY_CODE = 44               # код Москвы в справочнике СДЭК
MOSCOW_NAMES = {"москва", "moscow"}
UNKNOWN_TARIFF = "unknown"

DESCRIPTION_NAMES_LIMIT = 80
DESCRIPTION_LIMIT = 128

CENTS = Decimal("0.01")


# ────────────── Суммы ──────────────
def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_products_total(lines: Iterable[tuple]) -> Decimal:
    """Σ цена × количество по строкам (price, quantity)."""
    total = sum((Decimal(str(price)) * int(quantity) for price, quantity in lines), Decimal("0"))
    return to_money(total)


def subscription_discount(products_total: Decimal, is_subscribed: bool, percent: Optional[int] = None) -> Decimal:
    """Скидка подписчика в целых рублях, округление половины вверх."""
    if not is_subscribed:
        return to_money(0)
    percent = settings.SUBSCRIPTION_DISCOUNT_PERCENT if percent is None else percent
    discount = (Decimal(products_total) * Decimal(percent) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return to_money(discount)


def compute_total(products_total: Decimal, discount: Decimal, delivery_cost: Decimal) -> Decimal:
    """
    total = products_total - discount + delivery_cost.
    Отрицательная скидка или отрицательный итог отклоняются.
    """
    if discount < 0 or delivery_cost < 0:
        raise InvalidTotalError("Скидка и доставка не могут быть отрицательными")
    total = to_money(Decimal(products_total) - Decimal(discount) + Decimal(delivery_cost))
    if total < 0:
        raise InvalidTotalError()
    return total


# ────────────── Москва ──────────────
def normalize_city(name: str) -> str:
    return name.strip().lower().replace("ё", "е")


def is_moscow_city(name: Optional[str], city_code: Optional[int] = None) -> bool:
    """
    Доставка по Москве бесплатная.

    Если известен код города СДЭК, сравнивается только он.
    Иначе название разбивается на слова и ищется слово "москва" или "moscow",
    так что "г. Москва" подходит, а "Москвин" нет.
    """
    if city_code is not None:
        return int(city_code) == MOSCOW_CITY_CODE
    if not name:
        return False
    tokens = re.split(r"[^\w]+", normalize_city(name))
    return any(token in MOSCOW_NAMES for token in tokens)


# ────────────── Доставка ──────────────
def select_tariff(tariffs: list[dict], tariff_code: Optional[int] = None) -> Optional[dict]:
    """Выбранный тариф, а если его нет в списке, самый дешёвый."""
    priced = [t for t in tariffs if t.get("delivery_sum") is not None]
    if not priced:
        return None
    if tariff_code is not None:
        for tariff in priced:
            if tariff.get("tariff_code") == tariff_code:
                return tariff
    return min(priced, key=lambda t: Decimal(str(t["delivery_sum"])))


def cart_weight(cart_items: list[CartItem], default_weight: int) -> int:
    return sum((item.product.weight or default_weight) * item.quantity for item in cart_items)


async def resolve_destination(cdek, log, city: Optional[str], client_code: Optional[int]) -> tuple:
    """
    Город и код СДЭК назначения, определённые сервером.

    Код из запроса не принимается как есть: при известном названии код берётся
    из подсказки СДЭК, без названия код проверяется по справочнику городов.
    Недоступность СДЭК оставляет только название (код None).
    Ошибки настройки и авторизации СДЭК пробрасываются.
    """
    try:
        if city:
            found = await cdek.resolve_city_code(city)
            code = found["code"] if found else None
            if client_code is not None and client_code != code:
                await log.log_warning("checkout", "Код города из запроса не совпадает со СДЭК, игнорируем", {
                    "city": city,
                    "client_code": client_code,
                    "resolved_code": code,
                })
            return city, code

        if client_code is not None:
            cities = await cdek.get_cities(code=client_code, size=1)
            if cities:
                return cities[0].get("city"), client_code
            await log.log_warning("checkout", "Неизвестный код города", {"client_code": client_code})
    except (CarrierTransientError, CarrierApiError) as e:
        await log.log_warning("checkout", "Код города не определён", {
            "city": city,
            "code": e.code,
            "error": e.message,
        })
    return city, None


async def fetch_tariffs_safe(cdek, log, city: Optional[str], city_code: Optional[int], weight: int) -> list[dict]:
    """
    Тарифы СДЭК до города покупателя.
    Временная недоступность или отказ СДЭК дают пустой список;
    CarrierConfigError и CarrierAuthError пробрасываются.
    """
    if not city and city_code is None:
        return []

    to_location = {"code": city_code} if city_code is not None else {"city": city, "address": city}
    try:
        return await cdek.calculate_tariffs({
            "from_location": {"city": cdek.sender.get("city", settings.SENDER_CITY),
                              "address": cdek.sender.get("city", settings.SENDER_CITY)},
            "to_location": to_location,
            "packages": [{
                "number": "1",
                "weight": max(weight, 1),
                "length": PACKAGE_LENGTH,
                "width": PACKAGE_WIDTH,
                "height": PACKAGE_HEIGHT,
            }],
        })
    except (CarrierTransientError, CarrierApiError) as e:
        await log.log_warning("checkout", "Тарифы СДЭК недоступны, доставка 0", {
            "city": city,
            "city_code": city_code,
            "code": e.code,
            "error": e.message,
        })
        return []


async def quote_delivery(
    cdek,
    log,
    city: Optional[str],
    city_code: Optional[int],
    tariff_code: Optional[int],
    weight: int,
) -> dict:
    """
    Стоимость доставки, считается только на сервере.
    Москва бесплатно; иначе цена выбранного (или самого дешёвого) тарифа.
    Без тарифов стоимость 0, тариф записывается как unknown.
    city_code должен быть уже проверен через resolve_destination.
    """
    moscow = is_moscow_city(city, city_code)
    tariffs = await fetch_tariffs_safe(cdek, log, city, city_code, weight)
    tariff = select_tariff(tariffs, tariff_code)

    if tariff is None:
        if not moscow:
            await log.log_warning("checkout", "Тариф не определён, стоимость доставки 0", {
                "city": city,
                "tariff_code": tariff_code,
            })
        return {
            "delivery_cost": to_money(0),
            "delivery_tariff": UNKNOWN_TARIFF,
            "delivery_tariff_code": tariff_code,
        }

    if tariff_code is not None and tariff.get("tariff_code") != tariff_code:
        await log.log_warning("checkout", "Выбранный тариф недоступен, взят самый дешёвый", {
            "requested": tariff_code,
            "selected": tariff.get("tariff_code"),
        })

    return {
        "delivery_cost": to_money(0) if moscow else to_money(tariff["delivery_sum"]),
        "delivery_tariff": tariff.get("tariff_name") or str(tariff.get("tariff_code")),
        "delivery_tariff_code": tariff.get("tariff_code"),
    }


def build_payment_description(order_id: str, names: list[str], delivery_cost: Decimal) -> str:
    description = f"Заказ #{order_id[:8]}: {', '.join(names)[:DESCRIPTION_NAMES_LIMIT]}"
    if delivery_cost > 0:
        description += f" + доставка {int(delivery_cost)}₽"
    return description[:DESCRIPTION_LIMIT]


# ────────────── Checkout ──────────────
async def checkout_service(payload: CheckoutRequest, user, request: Request) -> CheckoutResponse:
    db = request.state.db
    log = request.app.state.log
    cdek = request.app.state.cdek
    yookassa = request.app.state.yookassa

    if user is None:
        raise UnauthorizedError()

    cart_items = await load_cart(db, user.id)
    if not cart_items:
        await log.log_warning("checkout", "Пустая корзина", {"user_id": user.id})
        raise EmptyCartError()

    # без платёжной системы заказ не создаётся
    yookassa.ensure_configured()

    products_total = compute_products_total((i.product.price, i.quantity) for i in cart_items)
    discount = subscription_discount(products_total, user.is_subscribed)

    delivery_city, delivery_city_code = await resolve_destination(
        cdek, log, payload.delivery_city, payload.delivery_city_code
    )
    quote = await quote_delivery(
        cdek,
        log,
        delivery_city,
        delivery_city_code,
        payload.delivery_tariff_code,
        cart_weight(cart_items, settings.DEFAULT_ITEM_WEIGHT),
    )
    total = compute_total(products_total, discount, quote["delivery_cost"])

    delivery_type = payload.delivery_type or ("office" if payload.delivery_point_code else "door")
    order = await create_order_from_cart(
        db,
        user.id,
        cart_items,
        products_total=products_total,
        discount=discount,
        total=total,
        delivery={
            "delivery_type": delivery_type,
            "delivery_point_code": payload.delivery_point_code,
            "delivery_city": delivery_city,
            "delivery_city_code": delivery_city_code,
            **quote,
        },
        contact={
            "recipient_name": payload.recipient_name or user.name,
            "address": payload.address,
            "phone": payload.phone,
            "email": payload.email or user.email,
        },
        default_weight=settings.DEFAULT_ITEM_WEIGHT,
    )
    order_id = order.id

    await log.log_info("checkout", "Заказ создан", {
        "order_id": order_id,
        "user_id": user.id,
        "products_total": products_total,
        "discount": discount,
        "delivery_cost": quote["delivery_cost"],
        "total": total,
    })

    description = build_payment_description(
        order_id, [i.product.name for i in cart_items], quote["delivery_cost"]
    )
    try:
        payment = await yookassa.create_payment(
            total,
            order_id,
            description,
            customer_email=payload.email or user.email,
            customer_phone=payload.phone,
        )
    except PaymentError as e:
        # заказ остаётся в awaiting_payment без платежа, покупатель может повторить
        await log.log_error("checkout", "Платёж не создан", {
            "order_id": order_id,
            "code": e.code,
            "error": e.message,
        })
        raise

    payment_id = payment.get("id")
    payment_status = payment.get("status") or "pending"
    await attach_payment(db, order_id, payment_id, payment_status)

    return CheckoutResponse(
        order_id=order_id,
        payment_id=payment_id,
        confirmation_url=(payment.get("confirmation") or {}).get("confirmation_url"),
        products_total=products_total,
        discount=discount,
        delivery_cost=quote["delivery_cost"],
        total=total,
    )
