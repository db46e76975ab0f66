# storefront/services/order.py

"""
Хранилище заказов и корзины.

Функции принимают AsyncSession и сами закрывают транзакцию (commit),
вызывающая сторона не управляет ею.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem, OrderStatus, PaymentStatus


async def load_cart(db: AsyncSession, user_id: int) -> list[CartItem]:
    """Корзина пользователя вместе с товарами."""
    result = await db.execute(
        select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id)
    )
    return list(result.scalars().all())


async def clear_cart(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    await db.commit()
    return result.rowcount


async def create_order_from_cart(
    db: AsyncSession,
    user_id: int,
    cart_items: list[CartItem],
    products_total: Decimal,
    discount: Decimal,
    total: Decimal,
    delivery: dict,
    contact: dict,
    default_weight: int,
) -> Order:
    """
    Создаёт заказ в статусе awaiting_payment и его позиции одной транзакцией.
    Цена, название и артикул товара копируются в позицию.
    """
    order = Order(
        user_id=user_id,
        products_total=products_total,
        discount=discount,
        total=total,
        status=OrderStatus.AWAITING_PAYMENT.value,
        payment_status=PaymentStatus.PENDING.value,
        **delivery,
        **contact,
    )
    order.items = [
        OrderItem(
            product_id=item.product_id,
            product_name=item.product.name,
            product_code=item.product.code,
            weight=item.product.weight or default_weight,
            quantity=item.quantity,
            price=item.product.price,
            size=item.size,
            color=item.color,
        )
        for item in cart_items
    ]
    db.add(order)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return order


async def attach_payment(db: AsyncSession, order_id: str, payment_id: str, payment_status: str):
    await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(payment_id=payment_id, payment_status=payment_status)
    )
    await db.commit()


async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
    """Свежая копия заказа из базы (после условных UPDATE объект в сессии устаревает)."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_order(db: AsyncSession, order_id: str, user_id: int) -> Optional[Order]:
    order = await get_order(db, order_id)
    if order is None or order.user_id != user_id:
        return None
    return order


async def list_user_orders(db: AsyncSession, user_id: int) -> list[Order]:
    result = await db.execute(
        select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def find_order_for_payment(
    db: AsyncSession, payment_id: Optional[str], order_id: Optional[str]
) -> Optional[Order]:
    """Ищет заказ сначала по id платежа ЮКассы, затем по order_id из metadata."""
    if payment_id:
        result = await db.execute(
            select(Order)
            .where(Order.payment_id == payment_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalars().first()
        if order is not None:
            return order
    if order_id:
        return await get_order(db, order_id)
    return None


async def transition_order(
    db: AsyncSession,
    order_id: str,
    expected_payment_status: str,
    payment_status: str,
    status: str,
    payment_id: Optional[str] = None,
    clear_cart_for: Optional[int] = None,
) -> bool:
    """
    Условный переход статуса (compare-and-swap по payment_status).

    Обновление применяется, только если в базе всё ещё expected_payment_status.
    Очистка корзины идёт в той же транзакции. Возвращает True, если переход
    выполнил именно этот вызов.
    """
    values = {"payment_status": payment_status, "status": status}
    if payment_id:
        values["payment_id"] = payment_id

    try:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == expected_payment_status)
            .values(**values)
        )
        if result.rowcount != 1:
            await db.rollback()
            return False

        if clear_cart_for is not None:
            await db.execute(delete(CartItem).where(CartItem.user_id == clear_cart_for))

        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return True


async def record_shipment(
    db: AsyncSession, order_id: str, carrier_order_uuid: Optional[str], carrier_number: Optional[str]
) -> bool:
    """Сохраняет отправление СДЭК, если у заказа его ещё нет."""
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.carrier_order_uuid.is_(None))
        .values(carrier_order_uuid=carrier_order_uuid, carrier_number=carrier_number)
    )
    await db.commit()
    return result.rowcount == 1
