# storefront/schemas/order.py

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from storefront.schemas.base import CamelModel

class OrderItemOut(CamelModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    product_code: Optional[str] = None
    quantity: int
    price: Decimal
    size: Optional[str] = None
    color: Optional[str] = None

class OrderOut(CamelModel):
    id: str
    products_total: Decimal
    discount: Decimal
    total: Decimal
    status: str
    payment_id: Optional[str] = None
    payment_status: str

    delivery_type: Optional[str] = None
    delivery_cost: Decimal
    delivery_tariff: Optional[str] = None
    delivery_tariff_code: Optional[int] = None
    delivery_point_code: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_city_code: Optional[int] = None

    recipient_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    carrier_order_uuid: Optional[str] = None
    carrier_number: Optional[str] = None
    created_at: Optional[datetime] = None

    items: List[OrderItemOut] = []

class OrderStatusOut(CamelModel):
    order_id: str
    status: str
    payment_status: str
    total: Decimal
