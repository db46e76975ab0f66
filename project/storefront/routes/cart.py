# storefront/routes/cart.py

from fastapi import APIRouter, Depends, Request, status

from storefront.routes.auth import get_current_user
from storefront.schemas.cart import CartItemCreate, CartItemOut, CartItemUpdate, CartOut
from storefront.services.cart import (
    add_cart_item_service,
    clear_cart_service,
    delete_cart_item_service,
    read_cart_service,
    update_cart_item_service,
)

router = APIRouter()


# ────────────── READ ──────────────
@router.get(
    "",
    response_model=CartOut,
    summary="Корзина текущего пользователя",
    responses={
        200: {"description": "Строки корзины и сумма товаров"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_cart(request: Request, user=Depends(get_current_user)):
    try:
        return await read_cart_service(user.id, request)
    except Exception as e:
        await request.app.state.log.log_error("cart", f"Ошибка при чтении корзины: {str(e)}", {"user_id": user.id})
        raise


# ────────────── ADD ──────────────
@router.post(
    "",
    response_model=CartItemOut,
    status_code=status.HTTP_201_CREATED,
    summary="Добавить товар в корзину",
    responses={
        201: {"description": "Товар добавлен (или увеличено количество)"},
        401: {"description": "Некорректный пользователь или токен"},
        404: {"description": "Товар не найден"},
        422: {"description": "Неверные данные запроса"},
    },
)
async def add_cart_item(item: CartItemCreate, request: Request, user=Depends(get_current_user)):
    try:
        return await add_cart_item_service(user.id, item, request)
    except Exception as e:
        await request.app.state.log.log_error("cart", f"Ошибка при добавлении товара: {str(e)}", {"user_id": user.id})
        raise


# ────────────── UPDATE ──────────────
@router.put(
    "/{item_id}",
    response_model=CartItemOut,
    summary="Изменить количество",
    responses={
        200: {"description": "Количество изменено"},
        401: {"description": "Некорректный пользователь или токен"},
        404: {"description": "Строка корзины не найдена"},
        422: {"description": "Количество меньше 1"},
    },
)
async def update_cart_item(item_id: int, item: CartItemUpdate, request: Request, user=Depends(get_current_user)):
    try:
        return await update_cart_item_service(user.id, item_id, item.quantity, request)
    except Exception as e:
        await request.app.state.log.log_error("cart", f"Ошибка при изменении количества: {str(e)}", {"id": item_id})
        raise


# ────────────── DELETE ──────────────
@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Удалить товар из корзины",
    responses={
        204: {"description": "Строка удалена"},
        401: {"description": "Некорректный пользователь или токен"},
        404: {"description": "Строка корзины не найдена"},
    },
)
async def delete_cart_item(item_id: int, request: Request, user=Depends(get_current_user)):
    try:
        await delete_cart_item_service(user.id, item_id, request)
    except Exception as e:
        await request.app.state.log.log_error("cart", f"Ошибка при удалении товара: {str(e)}", {"id": item_id})
        raise


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Очистить корзину",
    responses={
        204: {"description": "Корзина очищена"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def clear_cart(request: Request, user=Depends(get_current_user)):
    try:
        await clear_cart_service(user.id, request)
    except Exception as e:
        await request.app.state.log.log_error("cart", f"Ошибка при очистке корзины: {str(e)}", {"user_id": user.id})
        raise
