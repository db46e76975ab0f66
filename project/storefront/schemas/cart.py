# storefront/schemas/cart.py

from decimal import Decimal
from typing import Optional, List
from pydantic import Field

from storefront.schemas.base import CamelModel

class ProductOut(CamelModel):
    id: int
    name: str
    code: Optional[str] = None
    price: Decimal
    image: Optional[str] = None

class CartItemCreate(CamelModel):
    product_id: int
    quantity: int = Field(1, ge=1, description="Количество, не меньше 1")
    size: Optional[str] = None
    color: Optional[str] = None

class CartItemUpdate(CamelModel):
    quantity: int = Field(..., ge=1)

class CartItemOut(CamelModel):
    id: int
    product_id: int
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None
    product: ProductOut

class CartOut(CamelModel):
    items: List[CartItemOut]
    products_total: Decimal
