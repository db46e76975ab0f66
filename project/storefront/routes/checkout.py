# storefront/routes/checkout.py

from fastapi import APIRouter, Depends, Request, status

from storefront.routes.auth import get_current_user
from storefront.schemas.checkout import CheckoutRequest, CheckoutResponse
from storefront.services.checkout import checkout_service

router = APIRouter()


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Оформить заказ и создать платёж",
    response_description="ID заказа, суммы и ссылка на оплату ЮКассы",
    responses={
        201: {"description": "Заказ создан, покупателя нужно перенаправить на confirmationUrl"},
        400: {"description": "Корзина пуста (empty_cart) или ЮКасса отклонила запрос (request_error)"},
        401: {"description": "Пользователь не авторизован (unauthorized) или ошибка ключей ЮКассы (auth_error)"},
        422: {"description": "Неверные данные запроса или отрицательная сумма (invalid_total)"},
        500: {"description": "Платёжная система или СДЭК не настроены (payment_config_missing, carrier_config_missing)"},
        502: {"description": "СДЭК отклонил ключи (carrier_auth_error)"},
        503: {"description": "ЮКасса недоступна, можно повторить (payment_transient)"},
    },
)
async def checkout(payload: CheckoutRequest, request: Request, user=Depends(get_current_user)):
    """
    Оформление заказа из корзины.

    Скидка и стоимость доставки считаются на сервере. Корзина очищается
    только после подтверждения оплаты.
    """
    try:
        return await checkout_service(payload, user, request)
    except Exception as e:
        await request.app.state.log.log_error("checkout", f"Ошибка при оформлении заказа: {str(e)}", {
            "user_id": user.id,
        })
        raise
