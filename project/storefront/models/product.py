# storefront/models/product.py

from sqlalchemy import Column, Integer, String, Numeric
from storefront.utils.database import Base

class Product(Base):
    """Товар каталога. Этот сервис только читает его."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)

    name   = Column(String, nullable=False)            # Название
    code   = Column(String, nullable=True)             # Артикул
    price  = Column(Numeric(12, 2), nullable=False)    # Цена, руб.
    image  = Column(String, nullable=True)             # Ссылка на фото
    weight = Column(Integer, nullable=True)            # Вес в граммах (для СДЭК)
