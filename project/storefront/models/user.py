# storefront/models/user.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from storefront.utils.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент
    name = Column(String, nullable=True)
    login = Column(String, unique=True, nullable=False)   # логин
    password = Column(String, nullable=True)              # хэш пароля
    email = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False)
    is_subscribed = Column(Boolean, default=False)        # подтверждённая подписка на рассылку
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
