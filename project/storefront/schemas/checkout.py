# storefront/schemas/checkout.py

from decimal import Decimal
from typing import Optional

from storefront.schemas.base import CamelModel

class CheckoutRequest(CamelModel):
    """
    Данные формы оформления заказа.
    Стоимость доставки и скидка считаются на сервере, такие поля из запроса не читаются.
    """
    recipient_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    delivery_type: Optional[str] = None         # office | door
    delivery_tariff_code: Optional[int] = None
    delivery_point_code: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_city_code: Optional[int] = None

class CheckoutResponse(CamelModel):
    success: bool = True
    order_id: str
    payment_id: Optional[str] = None
    confirmation_url: Optional[str] = None
    products_total: Decimal
    discount: Decimal
    delivery_cost: Decimal
    total: Decimal
