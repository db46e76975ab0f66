import json
import os
import tempfile
from decimal import Decimal

import pytest

# Окружение задаётся до импорта приложения: settings читаются при импорте
TEST_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(TEST_DIR, 'test.db')}"
os.environ["AUTH_SECRET_KEY"] = "test-secret-key"
os.environ["LOG_DIR"] = os.path.join(TEST_DIR, "log")
os.environ["LOG_PRINT"] = "0"
os.environ["APP_URL"] = "https://shop.test"
os.environ["SENDER_CITY"] = "Москва"
os.environ["SUBSCRIPTION_DISCOUNT_PERCENT"] = "10"
os.environ["DEFAULT_ITEM_WEIGHT"] = "300"
os.environ["YOOKASSA_CHECK_IP"] = "false"

import httpx
from sqlalchemy import func, select

from storefront.main import app
from storefront.models.cart import CartItem
from storefront.models.order import Order
from storefront.models.product import Product
from storefront.models.user import User
from storefront.services.cdek import CdekClient
from storefront.services.notification import Mailer
from storefront.services.yookassa import YooKassaClient
from storefront.utils.database import AsyncSessionLocal, drop_db, engine, init_db
from storefront.utils.log import Log
from storefront.utils.security import create_access_token, hash_password

SENDER = {
    "city": "Москва",
    "address": "ул. Большая Дмитровка, 7",
    "name": "RUES VERTES",
    "phone": "+79990000000",
}

CITY_CODES = {"москва": 44, "новосибирск": 270, "санкт-петербург": 137}

TARIFFS = [
    {"tariff_code": 136, "tariff_name": "Посылка склад-склад", "delivery_sum": 300.0, "period_min": 3, "period_max": 5},
    {"tariff_code": 137, "tariff_name": "Посылка склад-дверь", "delivery_sum": 450.0, "period_min": 3, "period_max": 5},
]


# ────────────── Фейковые внешние API ──────────────
class FakeCdekApi:
    """Обработчик httpx.MockTransport, изображающий API СДЭК v2."""

    def __init__(self):
        self.calls = []
        self.token_requests = 0
        self.tariffs = list(TARIFFS)
        self.tariff_status = 200
        self.token_status = 200
        self.orders = []
        self.pickup_points = [{"code": "NSK1", "name": "ПВЗ на Ленина", "location": {"city": "Новосибирск"}}]
        self.suggestions = None
        self.raw_responses = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v2")
        self.calls.append((request.method, path, dict(request.url.params)))

        if path in self.raw_responses:
            status, body = self.raw_responses[path]
            return httpx.Response(status, json=body)

        if path == "/oauth/token":
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}", "expires_in": 3600})

        if path == "/location/suggest/cities":
            if self.suggestions is not None:
                return httpx.Response(200, json=self.suggestions)
            query = request.url.params.get("q", "").strip().lower()
            code = CITY_CODES.get(query)
            if code is None:
                return httpx.Response(200, json=[])
            return httpx.Response(200, json=[{"code": code, "city": query.capitalize(), "full_name": query}])

        if path == "/calculator/tarifflist":
            if self.tariff_status != 200:
                return httpx.Response(self.tariff_status, json={"errors": [{"message": "calculator down"}]})
            return httpx.Response(200, json={"tariff_codes": self.tariffs})

        if path == "/deliverypoints":
            return httpx.Response(200, json=self.pickup_points)

        if path == "/location/cities" and "code" in request.url.params:
            code = int(request.url.params["code"])
            return httpx.Response(200, json=[
                {"code": code, "city": name.capitalize()} for name, known in CITY_CODES.items() if known == code
            ])

        if path in ("/location/cities", "/location/regions"):
            return httpx.Response(200, json=[{"code": 44, "city": "Москва", "region": "Москва"}])

        if path == "/orders" and request.method == "POST":
            body = json.loads(request.content)
            self.orders.append(body)
            return httpx.Response(202, json={
                "entity": {"uuid": f"cdek-uuid-{len(self.orders)}"},
                "requests": [{"type": "CREATE", "state": "ACCEPTED"}],
            })

        return httpx.Response(404, json={"errors": [{"message": f"unknown endpoint {path}"}]})

    def requests_to(self, path: str) -> list:
        return [call for call in self.calls if call[1] == path]


class FakeYooKassaApi:
    def __init__(self):
        self.created = []
        self.headers = []
        self.statuses = {}
        self.status_code = 200
        self.get_status_code = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v3")

        if request.method == "POST" and path == "/payments":
            if self.status_code != 200:
                return httpx.Response(self.status_code, json={
                    "type": "error", "code": "invalid_request", "description": "Ошибка ЮКассы",
                })
            body = json.loads(request.content)
            self.created.append(body)
            self.headers.append(dict(request.headers))
            payment_id = f"pay-{len(self.created)}"
            self.statuses.setdefault(payment_id, "pending")
            return httpx.Response(200, json={
                "id": payment_id,
                "status": "pending",
                "amount": body["amount"],
                "confirmation": {
                    "type": "redirect",
                    "confirmation_url": f"https://yoomoney.ru/checkout/payments/v2/contract?orderId={payment_id}",
                },
                "metadata": body.get("metadata", {}),
            })

        if request.method == "GET" and path.startswith("/payments/"):
            if self.get_status_code != 200:
                return httpx.Response(self.get_status_code, json={"description": "unavailable"})
            payment_id = path.rsplit("/", 1)[-1]
            if payment_id not in self.statuses:
                return httpx.Response(404, json={"description": "Payment not found"})
            return httpx.Response(200, json={"id": payment_id, "status": self.statuses[payment_id]})

        return httpx.Response(404, json={"description": "not found"})


class FakeMailApi:
    def __init__(self):
        self.messages = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.messages.append(request.content.decode())
        return httpx.Response(200, json={"id": f"<msg-{len(self.messages)}@mail.test>", "message": "Queued"})


# ────────────── База ──────────────
@pytest.fixture
async def database():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


class Factory:
    """Создаёт данные напрямую через сессию, минуя API."""

    async def _save(self, obj):
        async with AsyncSessionLocal() as db:
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
        return obj

    async def user(self, login="anna", is_subscribed=False, email="anna@example.com", password="secret"):
        return await self._save(User(
            name="Анна",
            login=login,
            password=hash_password(password),
            email=email,
            is_subscribed=is_subscribed,
        ))

    async def product(self, name="Футболка женская Sheert", price="1000.00", code="RV-001", weight=300):
        return await self._save(Product(name=name, code=code, price=Decimal(price), weight=weight))

    async def cart_item(self, user, product, quantity=1, size=None, color=None):
        return await self._save(CartItem(
            user_id=user.id, product_id=product.id, quantity=quantity, size=size, color=color,
        ))

    async def cart_count(self, user) -> int:
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(func.count(CartItem.id)).where(CartItem.user_id == user.id))
            return result.scalar_one()

    async def order(self, order_id: str) -> Order:
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(Order).where(Order.id == order_id))
            return result.scalar_one_or_none()


@pytest.fixture
def factory(database):
    return Factory()


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.login})}"}


@pytest.fixture
def auth():
    return auth_headers


# ────────────── Приложение ──────────────
@pytest.fixture
async def log():
    log = Log()
    yield log
    await log.shutdown()


@pytest.fixture
def cdek_api():
    return FakeCdekApi()


@pytest.fixture
def yookassa_api():
    return FakeYooKassaApi()


@pytest.fixture
def mail_api():
    return FakeMailApi()


@pytest.fixture
async def cdek(log, cdek_api):
    client = CdekClient(
        "client-id", "client-secret", retries=0, sender=SENDER, log=log,
        transport=httpx.MockTransport(cdek_api),
    )
    yield client
    await client.aclose()


@pytest.fixture
async def yookassa(log, yookassa_api):
    client = YooKassaClient(
        "shop-id", "secret-key", app_url="https://shop.test", log=log,
        transport=httpx.MockTransport(yookassa_api),
    )
    yield client
    await client.aclose()


@pytest.fixture
async def mailer(log, mail_api):
    client = Mailer(
        "https://mail.test/v3/shop.test/messages", "mail-key", "shop@shop.test", "orders@shop.test",
        log=log, transport=httpx.MockTransport(mail_api),
    )
    yield client
    await client.aclose()


@pytest.fixture
async def client(database, log, cdek, yookassa, mailer):
    app.state.log = log
    app.state.cdek = cdek
    app.state.yookassa = yookassa
    app.state.mailer = mailer
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.fixture
async def shopper(factory):
    """Покупатель с одной футболкой за 1000 ₽ в корзине."""
    user = await factory.user()
    product = await factory.product()
    await factory.cart_item(user, product, quantity=1, size="M")
    return user


@pytest.fixture
async def placed_order(client, shopper):
    """Оформленный заказ в Новосибирск до ПВЗ, платёж pay-1 в статусе pending."""
    response = await client.post("/checkout", headers=auth_headers(shopper), json={
        "recipientName": "Анна Иванова",
        "phone": "+79991234567",
        "email": "anna@example.com",
        "address": "Новосибирск, ул. Ленина, 1",
        "deliveryType": "office",
        "deliveryTariffCode": 136,
        "deliveryPointCode": "NSK1",
        "deliveryCity": "Новосибирск",
    })
    assert response.status_code == 201, response.text
    return response.json()
