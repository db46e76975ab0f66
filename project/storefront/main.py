# storefront/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from dotenv import load_dotenv
from contextlib import asynccontextmanager

from storefront.config import settings
from storefront.errors import StorefrontError, storefront_error_handler
from storefront.utils.log import Log
from storefront.utils.database import init_db
from storefront.middleware.db_middleware import DBSessionMiddleware
from storefront.services.cdek import CdekClient
from storefront.services.yookassa import YooKassaClient
from storefront.services.notification import Mailer

import os
import multiprocessing

# --- загрузка переменных окружения ---
load_dotenv()

# --- sync логгер для раннего старта ---
boot_log = Log()
if os.environ.get("RUN_MAIN") == "true" or multiprocessing.current_process().name == "MainProcess":
    boot_log.log_info_sync(target="startup", message="Импорты main.py выполнены")

# ────────────── Lifespan ──────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    boot_log.log_info_sync(target="startup", message="lifespan: startup начат")

    # Инициализация БД
    await init_db()
    boot_log.log_info_sync(target="startup", message="База инициализирована")

    app.state.log = Log()
    await app.state.log.log_info(target="startup", message="Async Log инициализирован")

    # Клиенты внешних API
    app.state.cdek = CdekClient.from_settings(settings, log=app.state.log)
    app.state.yookassa = YooKassaClient.from_settings(settings, log=app.state.log)
    app.state.mailer = Mailer.from_settings(settings, log=app.state.log)

    if not app.state.cdek.configured:
        await app.state.log.log_warning("startup", "СДЭК не настроен: CDEK_CLIENT_ID / CDEK_CLIENT_SECRET")
    if not app.state.yookassa.configured:
        await app.state.log.log_warning("startup", "ЮКасса не настроена: YOOKASSA_SHOP_ID / YOOKASSA_SECRET_KEY")

    yield

    # shutdown
    await app.state.log.log_info(target="shutdown", message="Остановка приложения")
    await app.state.cdek.aclose()
    await app.state.yookassa.aclose()
    await app.state.mailer.aclose()
    await app.state.log.shutdown()
    boot_log.log_info_sync(target="shutdown", message="Log корректно завершён")

# ────────────── Создаём FastAPI приложение ──────────────
app = FastAPI(title="RUES VERTES Storefront API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DB middleware для request.state.db
app.add_middleware(DBSessionMiddleware)

# Ошибки приложения -> {"detail": ..., "code": ...}
app.add_exception_handler(StorefrontError, storefront_error_handler)

@app.get("/")
def read_root():
    return {"message": "RUES VERTES storefront"}

# ────────────── Подключение роутов ──────────────
from storefront.routes import auth, cart, checkout, delivery, order, payments

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
app.include_router(payments.router, prefix="/payments", tags=["payments"])
app.include_router(delivery.router, prefix="/delivery", tags=["delivery"])
app.include_router(order.router, prefix="/orders", tags=["orders"])

# ────────────── Запуск uvicorn ──────────────
if __name__ == "__main__":
    boot_log.log_info_sync(target="startup", message="Запуск uvicorn.run")
    uvicorn.run(
        "storefront.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info",
        reload=True
    )
