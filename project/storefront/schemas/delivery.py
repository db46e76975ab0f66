# storefront/schemas/delivery.py

from typing import Optional
from pydantic import BaseModel

class PickupPointsQuery(BaseModel):
    """Фильтры ПВЗ, передаются в СДЭК как есть."""
    city: Optional[str] = None
    city_code: Optional[int] = None
    type: Optional[str] = None
    region_code: Optional[int] = None
    postal_code: Optional[str] = None
    code: Optional[str] = None
    is_handout: Optional[bool] = None
    have_cashless: Optional[bool] = None
    allowed_cod: Optional[bool] = None
    is_dressing_room: Optional[bool] = None
    lang: Optional[str] = None

    model_config = {"extra": "allow"}
