# storefront/services/cart.py

from sqlalchemy.future import select
from fastapi import Request

from storefront.errors import CartItemNotFoundError, ProductNotFoundError
from storefront.models.cart import CartItem
from storefront.models.product import Product
from storefront.schemas.cart import CartItemCreate
from storefront.services.checkout import compute_products_total
from storefront.services.order import clear_cart, load_cart


async def read_cart_service(user_id: int, request: Request) -> dict:
    """
    Корзина пользователя и сумма товаров.
    """
    items = await load_cart(request.state.db, user_id)
    return {
        "items": items,
        "products_total": compute_products_total((i.product.price, i.quantity) for i in items),
    }


async def add_cart_item_service(user_id: int, item: CartItemCreate, request: Request) -> CartItem:
    """
    Добавляет товар в корзину. Одинаковый товар того же размера и цвета
    увеличивает количество существующей строки.
    """
    db = request.state.db
    log = request.app.state.log

    product = await db.get(Product, item.product_id)
    if product is None:
        await log.log_warning("cart", "Товар не найден", {"product_id": item.product_id})
        raise ProductNotFoundError()

    result = await db.execute(
        select(CartItem).where(
            CartItem.user_id == user_id,
            CartItem.product_id == item.product_id,
            CartItem.size.is_(item.size) if item.size is None else CartItem.size == item.size,
            CartItem.color.is_(item.color) if item.color is None else CartItem.color == item.color,
        )
    )
    cart_item = result.scalar_one_or_none()

    if cart_item is None:
        cart_item = CartItem(
            user_id=user_id,
            product_id=item.product_id,
            quantity=item.quantity,
            size=item.size,
            color=item.color,
        )
        db.add(cart_item)
    else:
        cart_item.quantity += item.quantity

    await db.commit()
    await db.refresh(cart_item, attribute_names=["product"])

    await log.log_info("cart", "Товар добавлен в корзину", {
        "user_id": user_id,
        "product_id": item.product_id,
        "quantity": cart_item.quantity,
    })
    return cart_item


async def _read_own_item(user_id: int, item_id: int, request: Request) -> CartItem:
    result = await request.state.db.execute(
        select(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id)
    )
    cart_item = result.scalar_one_or_none()
    if cart_item is None:
        await request.app.state.log.log_warning("cart", "Строка корзины не найдена", {"id": item_id})
        raise CartItemNotFoundError()
    return cart_item


async def update_cart_item_service(user_id: int, item_id: int, quantity: int, request: Request) -> CartItem:
    """Меняет количество (валидация quantity >= 1 в схеме и CHECK в базе)."""
    db = request.state.db
    cart_item = await _read_own_item(user_id, item_id, request)
    cart_item.quantity = quantity
    await db.commit()
    await db.refresh(cart_item, attribute_names=["product"])
    await request.app.state.log.log_info("cart", "Количество изменено", {"id": item_id, "quantity": quantity})
    return cart_item


async def delete_cart_item_service(user_id: int, item_id: int, request: Request) -> None:
    db = request.state.db
    cart_item = await _read_own_item(user_id, item_id, request)
    await db.delete(cart_item)
    await db.commit()
    await request.app.state.log.log_info("cart", "Товар удалён из корзины", {"id": item_id})


async def clear_cart_service(user_id: int, request: Request) -> int:
    removed = await clear_cart(request.state.db, user_id)
    await request.app.state.log.log_info("cart", "Корзина очищена", {"user_id": user_id, "removed": removed})
    return removed
