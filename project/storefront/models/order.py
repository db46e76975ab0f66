# storefront/models/order.py

import uuid
from enum import Enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.utils.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Статусы платежа ЮКассы, зеркалируются в заказ."""
    PENDING = "pending"
    WAITING_FOR_CAPTURE = "waiting_for_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"
    REFUNDED = "refunded"


def new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_order_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    products_total = Column(Numeric(12, 2), nullable=False)   # Сумма товаров
    discount       = Column(Numeric(12, 2), nullable=False, default=0)
    total          = Column(Numeric(12, 2), nullable=False)   # К оплате

    status         = Column(String, nullable=False, default=OrderStatus.AWAITING_PAYMENT.value)
    payment_id     = Column(String, nullable=True, index=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)

    # Доставка (снимок на момент оформления)
    delivery_type        = Column(String, nullable=True)       # office | door
    delivery_cost        = Column(Numeric(12, 2), nullable=False, default=0)
    delivery_tariff      = Column(String, nullable=True)
    delivery_tariff_code = Column(Integer, nullable=True)
    delivery_point_code  = Column(String, nullable=True)
    delivery_city        = Column(String, nullable=True)
    delivery_city_code   = Column(Integer, nullable=True)

    # Контакты получателя
    recipient_name = Column(String, nullable=True)
    address        = Column(String, nullable=True)
    phone          = Column(String, nullable=True)
    email          = Column(String, nullable=True)

    # Отправление СДЭК, заполняется один раз после оплаты
    carrier_order_uuid = Column(String, nullable=True)
    carrier_number     = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    """Снимок строки корзины: цена и название не меняются вслед за каталогом."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id   = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    product_name = Column(String, nullable=False)
    product_code = Column(String, nullable=True)
    weight       = Column(Integer, nullable=True)
    quantity     = Column(Integer, nullable=False)
    price        = Column(Numeric(12, 2), nullable=False)
    size         = Column(String, nullable=True)
    color        = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")
