# storefront/schemas/payment.py

from typing import Optional
from pydantic import BaseModel, Field

class NotificationObject(BaseModel):
    """Объект уведомления ЮКассы: платёж или возврат (у возврата есть payment_id)."""
    id: str
    status: Optional[str] = None
    payment_id: Optional[str] = None
    metadata: dict = Field(default_factory=dict)

    model_config = {"extra": "allow"}

class WebhookNotification(BaseModel):
    type: Optional[str] = None       # всегда "notification"
    event: str                       # payment.succeeded, refund.succeeded, ...
    object: NotificationObject

class WebhookResponse(BaseModel):
    success: bool = True
    result: str                      # ignored | unchanged | transitioned
    order_id: Optional[str] = None
    payment_status: Optional[str] = None
