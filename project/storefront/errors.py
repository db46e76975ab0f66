# storefront/errors.py

"""
Ошибки приложения.

Каждая ошибка несёт машинный код (`code`), HTTP статус для границы API
и сообщение для покупателя. Сервисы и клиенты внешних API бросают эти
исключения, а обработчик в main.py превращает их в JSON-ответ
{"detail": ..., "code": ...}.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class StorefrontError(Exception):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Внутренняя ошибка сервера"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)


# ────────────── Покупатель / заказ ──────────────
class UnauthorizedError(StorefrontError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Пользователь не авторизован"


class EmptyCartError(StorefrontError):
    code = "empty_cart"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Корзина пуста"


class InvalidTotalError(StorefrontError):
    code = "invalid_total"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Сумма заказа не может быть отрицательной"


class OrderNotFoundError(StorefrontError):
    code = "order_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Заказ не найден"


class CartItemNotFoundError(StorefrontError):
    code = "cart_item_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Товар в корзине не найден"


class ProductNotFoundError(StorefrontError):
    code = "product_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Товар не найден"


# ────────────── СДЭК ──────────────
class CarrierError(StorefrontError):
    code = "carrier_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Ошибка СДЭК"


class CarrierConfigError(CarrierError):
    code = "carrier_config_missing"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "СДЭК не настроен: задайте CDEK_CLIENT_ID и CDEK_CLIENT_SECRET"


class CarrierAuthError(CarrierError):
    code = "carrier_auth_error"
    message = "Ошибка авторизации в СДЭК"


class CarrierApiError(CarrierError):
    code = "carrier_api_error"
    message = "СДЭК отклонил запрос"


class CarrierTransientError(CarrierError):
    code = "carrier_transient"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "СДЭК временно недоступен"


class DeliveryRequestError(StorefrontError):
    code = "delivery_bad_request"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Некорректный запрос доставки"


# ────────────── ЮКасса ──────────────
class PaymentError(StorefrontError):
    code = "payment_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Ошибка платёжной системы"


class PaymentConfigError(PaymentError):
    code = "payment_config_missing"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Платежная система не настроена"


class PaymentAuthError(PaymentError):
    code = "auth_error"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Ошибка авторизации в платёжной системе"


class PaymentRequestError(PaymentError):
    code = "request_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Платёжная система отклонила запрос"


class PaymentNetworkError(PaymentError):
    code = "payment_transient"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Платёжная система недоступна, попробуйте ещё раз"


# ────────────── Webhook ──────────────
class WebhookMalformedError(StorefrontError):
    code = "webhook_malformed"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid webhook payload"


class WebhookOrderMissingError(StorefrontError):
    code = "webhook_order_missing"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Order not found"


class WebhookForbiddenError(StorefrontError):
    code = "webhook_forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Webhook source not allowed"


class NotificationError(StorefrontError):
    code = "notification_failed"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Не удалось отправить уведомление"


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
