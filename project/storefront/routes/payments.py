# storefront/routes/payments.py

from fastapi import APIRouter, Query, Request

from storefront.schemas.order import OrderStatusOut
from storefront.schemas.payment import WebhookResponse
from storefront.services.payment import handle_webhook_service, poll_payment_status_service

router = APIRouter()


# ────────────── WEBHOOK ──────────────
@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Уведомление ЮКассы о статусе платежа",
    responses={
        200: {"description": "Уведомление обработано или проигнорировано"},
        400: {"description": "Некорректное тело уведомления"},
        403: {"description": "Адрес отправителя не принадлежит ЮКассе (если включена проверка)"},
        404: {"description": "Заказ не найден, ЮКасса повторит уведомление"},
    },
)
async def payment_webhook(request: Request):
    # тело читается в сервисе: некорректный JSON должен давать 400, а не 422
    try:
        return await handle_webhook_service(request)
    except Exception as e:
        await request.app.state.log.log_error("webhook", f"Ошибка обработки уведомления: {str(e)}")
        raise


# ────────────── STATUS ──────────────
@router.get(
    "/status",
    response_model=OrderStatusOut,
    summary="Статус оплаты заказа",
    response_description="Статус заказа после сверки с ЮКассой",
    responses={
        200: {"description": "Текущий статус заказа"},
        404: {"description": "Заказ не найден"},
        422: {"description": "Не передан orderId"},
    },
)
async def payment_status(request: Request, order_id: str = Query(..., alias="orderId")):
    try:
        return await poll_payment_status_service(order_id, request)
    except Exception as e:
        await request.app.state.log.log_error("payment", f"Ошибка при получении статуса: {str(e)}", {
            "order_id": order_id,
        })
        raise
