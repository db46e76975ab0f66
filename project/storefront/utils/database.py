# storefront/utils/database.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from storefront.config import settings

# ────────────── Base для моделей ──────────────
Base = declarative_base()  # базовый класс для всех моделей SQLAlchemy

# ────────────── URL базы данных ──────────────
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

engine_options = {"echo": False}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine_options["connect_args"] = {"check_same_thread": False}
    if ":memory:" in SQLALCHEMY_DATABASE_URL:
        # одна база в памяти на весь процесс
        engine_options["poolclass"] = StaticPool

# ────────────── Асинхронный движок ──────────────
engine = create_async_engine(SQLALCHEMY_DATABASE_URL, **engine_options)

# ────────────── Асинхронная сессия ──────────────
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт все таблицы в базе данных (если ещё не созданы).
    Схемой и миграциями каталога владеет отдельный сервис,
    здесь только таблицы, которые нужны корзине и оформлению заказа.
    """
    # регистрируем модели в metadata
    from storefront.models import user, product, cart, order  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Удаляет все таблицы (используется тестами)."""
    from storefront.models import user, product, cart, order  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
