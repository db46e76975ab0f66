# storefront/schemas/user.py

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class UserCreate(BaseModel):
    """
    Схема регистрации покупателя.
    """
    name: Optional[str] = None
    login: str
    password: str
    email: Optional[str] = None

class UserResponse(BaseModel):
    """
    Схема для ответа API при чтении пользователя.
    Флаг подписки выставляет сервис рассылки, здесь только чтение.
    """
    id: int
    name: Optional[str] = None
    login: str
    email: Optional[str] = None
    is_admin: bool = False
    is_subscribed: bool = False
    timestamp: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }
