# storefront/routes/order.py

from typing import List

from fastapi import APIRouter, Depends, Request, status

from storefront.errors import OrderNotFoundError
from storefront.routes.auth import get_current_user
from storefront.schemas.order import OrderOut
from storefront.services.order import get_user_order, list_user_orders

router = APIRouter()


# ────────────── READ ALL ──────────────
@router.get(
    "",
    response_model=List[OrderOut],
    status_code=status.HTTP_200_OK,
    summary="Мои заказы",
    response_description="Заказы текущего пользователя, новые первыми",
    responses={
        200: {"description": "Список заказов успешно получен"},
        401: {"description": "Некорректный пользователь или токен"},
    },
)
async def read_orders(request: Request, user=Depends(get_current_user)):
    try:
        orders = await list_user_orders(request.state.db, user.id)
        await request.app.state.log.log_info("order", "Список заказов загружен", {"count": len(orders)})
        return orders
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении списка заказов: {str(e)}")
        raise


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=OrderOut,
    status_code=status.HTTP_200_OK,
    summary="Получить заказ по ID",
    response_description="Заказ с позициями и данными доставки",
    responses={
        200: {"description": "Заказ найден и возвращён"},
        401: {"description": "Некорректный пользователь или токен"},
        404: {"description": "Заказ не найден"},
    },
)
async def read_order(id: str, request: Request, user=Depends(get_current_user)):
    try:
        order = await get_user_order(request.state.db, id, user.id)
        if order is None:
            raise OrderNotFoundError()
        return order
    except Exception as e:
        await request.app.state.log.log_error("order", f"Ошибка при получении заказа: {str(e)}", {"id": id})
        raise
