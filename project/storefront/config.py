# storefront/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str                        # URL базы (sqlite+aiosqlite://, postgresql+asyncpg://)
    AUTH_SECRET_KEY: str
    AUTH_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    APP_URL: str = "http://localhost:3000"   # куда ЮКасса возвращает покупателя

    # ────────────── СДЭК ──────────────
    CDEK_CLIENT_ID: str = ""
    CDEK_CLIENT_SECRET: str = ""
    CDEK_TEST_MODE: bool = False             # True -> api.edu.cdek.ru
    CDEK_TIMEOUT: float = 15.0
    CDEK_RETRIES: int = 2                    # повторы только для сетевых ошибок и 5xx

    # ────────────── ЮКасса ──────────────
    YOOKASSA_SHOP_ID: str = ""
    YOOKASSA_SECRET_KEY: str = ""
    YOOKASSA_TIMEOUT: float = 15.0
    YOOKASSA_RETRIES: int = 0
    YOOKASSA_CHECK_IP: bool = False          # принимать webhook только с адресов ЮКассы

    # ────────────── Отправитель (магазин) ──────────────
    SENDER_CITY: str = "Москва"
    SENDER_ADDRESS: str = ""
    SENDER_NAME: str = "RUES VERTES"
    SENDER_PHONE: str = ""
    DEFAULT_ITEM_WEIGHT: int = 300           # граммы, если у товара вес не указан

    SUBSCRIPTION_DISCOUNT_PERCENT: int = 10  # скидка за подписку на рассылку

    # ────────────── Почта (HTTP API, совместимый с Mailgun) ──────────────
    MAIL_API_URL: str = ""
    MAIL_API_KEY: str = ""
    MAIL_FROM: str = ""
    MAIL_ORDER_TO: str = ""                  # ящик магазина для уведомлений о заказах

    LOG_DIR: str = "log"
    LOG_PRINT: str = "1"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def cdek_configured(self) -> bool:
        return bool(self.CDEK_CLIENT_ID and self.CDEK_CLIENT_SECRET)

    @property
    def yookassa_configured(self) -> bool:
        return bool(self.YOOKASSA_SHOP_ID and self.YOOKASSA_SECRET_KEY)

settings = Settings()
