# storefront/services/cdek.py

"""
Клиент API СДЭК v2 (https://api-docs.cdek.ru/).

1. Авторизация OAuth 2.0 (client_credentials), токен кэшируется в CdekTokenProvider
2. Локации: регионы, города, подсказки городов, почтовые индексы
3. Пункты выдачи (ПВЗ)
4. Расчёт стоимости доставки
5. Ограничения по международным отправлениям
6-10. Заказы: регистрация, изменение, информация, удаление, отказ
"""

import asyncio
import copy
import time
from typing import Any, Callable, Optional

import httpx

from storefront.errors import (
    CarrierApiError,
    CarrierAuthError,
    CarrierConfigError,
    CarrierTransientError,
)
from storefront.services.http import error_message, send_with_retry

CDEK_API_URL = "https://api.cdek.ru/v2"
CDEK_TEST_API_URL = "https://api.edu.cdek.ru/v2"

TOKEN_EXPIRY_MARGIN = 60  # секунд до фактического истечения

ORDER_TYPE_ONLINE_STORE = 1

# Габариты коробки по умолчанию, см
PACKAGE_LENGTH = 30
PACKAGE_WIDTH = 20
PACKAGE_HEIGHT = 10


def clean_params(params: Optional[dict]) -> dict:
    """Убирает пустые значения из query-параметров."""
    if not params:
        return {}
    return {k: v for k, v in params.items() if v is not None and v != "" and v != []}


# ==========================================================
# АВТОРИЗАЦИЯ
# ==========================================================
class CdekTokenProvider:
    """
    Хранит OAuth токен СДЭК и обновляет его за 60 секунд до истечения.

    Параллельные запросы, пришедшие без действующего токена, ждут одну
    и ту же выдачу токена под asyncio.Lock, а не запрашивают каждый свой.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        client_id: str,
        client_secret: str,
        retries: int = 0,
        log=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.base_url = base_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.retries = retries
        self.log = log
        self.clock = clock

        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _valid_token(self) -> Optional[str]:
        if self._token and self.clock() < self._expires_at:
            return self._token
        return None

    def invalidate(self):
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        token = self._valid_token()
        if token:
            return token

        async with self._lock:
            # пока ждали, токен мог получить другой запрос
            token = self._valid_token()
            if token:
                return token
            return await self._fetch_token()

    async def _fetch_token(self) -> str:
        if not self.configured:
            raise CarrierConfigError()

        url = f"{self.base_url}/oauth/token"
        try:
            response = await send_with_retry(
                self.http,
                "POST",
                url,
                retries=self.retries,
                log=self.log,
                target="cdek",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        except httpx.TransportError as e:
            raise CarrierTransientError(f"СДЭК недоступен при авторизации: {e!r}")

        if response.status_code >= 500:
            raise CarrierTransientError(f"СДЭК auth error ({response.status_code})")
        if response.status_code >= 400:
            message = error_message(response)
            if self.log:
                await self.log.log_error("cdek", "Ошибка авторизации", {
                    "status": response.status_code,
                    "error": message,
                    "client_id": f"{self.client_id[:5]}...",
                })
            raise CarrierAuthError(f"CDEK auth error ({response.status_code}): {message}")

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("access_token"):
            if self.log:
                await self.log.log_error("cdek", "В ответе авторизации нет access_token", {
                    "status": response.status_code,
                    "response": response.text[:200],
                })
            raise CarrierAuthError("СДЭК не вернул access_token")

        self._token = data["access_token"]
        lifetime = max(int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN, 0)
        self._expires_at = self.clock() + lifetime

        if self.log:
            await self.log.log_info("cdek", "Получен токен СДЭК", {"expires_in": data.get("expires_in")})
        return self._token


# ==========================================================
# КЛИЕНТ
# ==========================================================
class CdekClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        test_mode: bool = False,
        timeout: float = 15.0,
        retries: int = 2,
        sender: Optional[dict] = None,
        log=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = CDEK_TEST_API_URL if test_mode else CDEK_API_URL
        self.test_mode = test_mode
        self.retries = retries
        self.log = log
        # город, адрес, название и телефон магазина для регистрации заказов
        self.sender = sender or {}
        self.http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.tokens = CdekTokenProvider(
            self.http, self.base_url, client_id, client_secret, retries=retries, log=log
        )

    @classmethod
    def from_settings(cls, settings, log=None, transport=None) -> "CdekClient":
        return cls(
            client_id=settings.CDEK_CLIENT_ID,
            client_secret=settings.CDEK_CLIENT_SECRET,
            test_mode=settings.CDEK_TEST_MODE,
            timeout=settings.CDEK_TIMEOUT,
            retries=settings.CDEK_RETRIES,
            sender={
                "city": settings.SENDER_CITY,
                "address": settings.SENDER_ADDRESS,
                "name": settings.SENDER_NAME,
                "phone": settings.SENDER_PHONE,
            },
            log=log,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.tokens.configured

    async def aclose(self):
        await self.http.aclose()

    async def request(self, method: str, endpoint: str, params: Optional[dict] = None, json: Any = None) -> Any:
        """Авторизованный запрос к API СДЭК."""
        if not self.configured:
            raise CarrierConfigError()

        token = await self.tokens.get_token()
        url = f"{self.base_url}{endpoint}"
        try:
            response = await send_with_retry(
                self.http,
                method,
                url,
                retries=self.retries,
                log=self.log,
                target="cdek",
                params=clean_params(params),
                json=json,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.TransportError as e:
            raise CarrierTransientError(f"СДЭК недоступен: {e!r}", endpoint=endpoint)

        if response.status_code == 401:
            self.tokens.invalidate()
            raise CarrierAuthError("Токен СДЭК отклонён", endpoint=endpoint)
        if response.status_code >= 500:
            raise CarrierTransientError(f"CDEK API error ({response.status_code})", endpoint=endpoint)
        if response.status_code >= 400:
            message = error_message(response)
            if self.log:
                await self.log.log_error("cdek", "Ошибка API", {
                    "endpoint": endpoint,
                    "status": response.status_code,
                    "error": message,
                })
            raise CarrierApiError(f"CDEK API error ({response.status_code}): {message}", endpoint=endpoint)

        if not response.content:
            return None
        return response.json()

    # ==========================================================
    # ЛОКАЦИИ
    # ==========================================================
    async def get_regions(self, **params) -> list[dict]:
        """GET /location/regions"""
        return await self.request("GET", "/location/regions", params=params) or []

    async def suggest_cities(self, query: str, **params) -> list[dict]:
        """GET /location/suggest/cities: подсказки для автодополнения."""
        return await self.request("GET", "/location/suggest/cities", params={"q": query, **params}) or []

    async def get_cities(self, **params) -> list[dict]:
        """GET /location/cities"""
        return await self.request("GET", "/location/cities", params=params) or []

    async def get_postcodes(self, **params) -> list:
        """GET /location/postcodes"""
        return await self.request("GET", "/location/postcodes", params=params) or []

    async def resolve_city_code(self, city: str) -> Optional[dict]:
        """Первая подсказка СДЭК для названия города или None."""
        cities = await self.suggest_cities(city, size=1)
        if cities and cities[0].get("code"):
            return cities[0]
        return None

    # ==========================================================
    # ПУНКТЫ ВЫДАЧИ
    # ==========================================================
    async def get_pickup_points(self, **params) -> list[dict]:
        """GET /deliverypoints"""
        response = await self.request("GET", "/deliverypoints", params=params)

        # API отдаёт массив, либо объект с deliverypoints / deliverypoint
        if isinstance(response, list):
            return response
        if isinstance(response, dict):
            if "deliverypoints" in response:
                return response["deliverypoints"] or []
            if "deliverypoint" in response:
                point = response["deliverypoint"]
                return point if isinstance(point, list) else [point]

        if self.log:
            await self.log.log_warning("cdek", "Неожиданный формат ответа deliverypoints", {
                "response": str(response)[:200],
            })
        return []

    async def pickup_points_simple(self, city: str) -> list[dict]:
        return await self.get_pickup_points(city=city)

    # ==========================================================
    # РАСЧЁТ СТОИМОСТИ
    # ==========================================================
    async def _resolve_location(self, location: dict):
        """Подставляет код города СДЭК вместо названия; при неудаче оставляет название."""
        city = location.get("city")
        if not city or location.get("code"):
            return
        try:
            found = await self.resolve_city_code(city)
        except (CarrierApiError, CarrierTransientError, CarrierAuthError) as e:
            if self.log:
                await self.log.log_warning("cdek", "Код города не найден, используем название", {
                    "city": city,
                    "error": e.message,
                })
            return
        if found:
            location["code"] = found["code"]
            location.setdefault("address", found.get("city") or city)

    async def calculate_tariffs(self, tariff_request: dict) -> list[dict]:
        """
        POST /calculator/tarifflist: все доступные тарифы с ценой.

        tariff_request: from_location, to_location, packages (обязательно),
        type (1 - интернет-магазин, по умолчанию), date, currency, lang, services.
        """
        body = copy.deepcopy(tariff_request)
        body.setdefault("type", ORDER_TYPE_ONLINE_STORE)

        await self._resolve_location(body["to_location"])
        await self._resolve_location(body["from_location"])

        response = await self.request("POST", "/calculator/tarifflist", json=body) or {}
        if response.get("errors"):
            raise CarrierApiError(
                "CDEK tariff calculation error: " + ", ".join(e.get("message", "") for e in response["errors"])
            )
        return response.get("tariff_codes") or []

    async def calculate_tariff(self, tariff_request: dict) -> dict:
        """POST /calculator/tariff: стоимость по конкретному тарифу."""
        if not tariff_request.get("tariff_code"):
            raise CarrierApiError("tariff_code is required for tariff calculation")
        return await self.request("POST", "/calculator/tariff", json=tariff_request)

    async def tariffs_simple(
        self,
        from_city: str,
        to_city: str,
        weight: int = 1000,
        length: int = 20,
        width: int = 15,
        height: int = 10,
    ) -> list[dict]:
        """Тарифы между двумя городами для одной коробки (вес в граммах, размеры в см)."""
        return await self.calculate_tariffs({
            "type": ORDER_TYPE_ONLINE_STORE,
            "from_location": {"city": from_city, "address": from_city},
            "to_location": {"city": to_city, "address": to_city},
            "packages": [{"number": "1", "weight": weight, "length": length, "width": width, "height": height}],
        })

    # ==========================================================
    # ОГРАНИЧЕНИЯ
    # ==========================================================
    async def check_international_restrictions(self, packages: list[dict]) -> Any:
        """POST /international/package/restrictions"""
        return await self.request("POST", "/international/package/restrictions", json={"packages": packages})

    # ==========================================================
    # ЗАКАЗЫ
    # ==========================================================
    async def create_order(self, order_request: dict) -> dict:
        """POST /orders: регистрация заказа."""
        return await self.request("POST", "/orders", json=order_request)

    async def update_order(self, uuid: str, changes: dict) -> dict:
        """PATCH /orders/{uuid}"""
        return await self.request("PATCH", f"/orders/{uuid}", json=changes)

    async def get_orders(self, **params) -> list[dict]:
        """GET /orders"""
        response = await self.request("GET", "/orders", params=params) or {}
        return response.get("requests") or []

    async def get_order(self, uuid: str) -> dict:
        """GET /orders/{uuid}"""
        return await self.request("GET", f"/orders/{uuid}")

    async def delete_order(self, uuid: str) -> None:
        """DELETE /orders/{uuid}"""
        await self.request("DELETE", f"/orders/{uuid}")

    async def refuse_order(self, uuid: str, reason: Optional[str] = None) -> dict:
        """POST /orders/{uuid}/refusal: регистрация отказа."""
        return await self.request("POST", f"/orders/{uuid}/refusal", json={"reason": reason})

    # ==========================================================
    # ПРОКСИ ДЛЯ ВИДЖЕТА
    # ==========================================================
    async def proxy(self, method: str, endpoint: str, params: Optional[dict] = None, json: Any = None) -> Any:
        """Ответ СДЭК как есть, для виджета на сайте (токен остаётся на сервере)."""
        if self.log:
            await self.log.log_info("cdek", f"Виджет: {method} {endpoint}", {"params": params})
        return await self.request(method, endpoint, params=params, json=json)

    def build_shop_order(
        self,
        order_number: str,
        tariff_code: int,
        recipient_name: str,
        recipient_phone: str,
        items: list[dict],
        recipient_email: Optional[str] = None,
        delivery_point_code: Optional[str] = None,
        delivery_city: Optional[str] = None,
        delivery_city_code: Optional[int] = None,
        delivery_address: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> dict:
        """
        Запрос регистрации заказа интернет-магазина.

        Заказ оплачен заранее, поэтому payment у товаров нулевой.
        Доставка либо до ПВЗ (delivery_point), либо курьером по адресу (to_location).
        items: name, ware_key, cost, weight (г), amount.
        """
        cdek_items = [
            {
                "name": item["name"][:255],
                "ware_key": str(item["ware_key"])[:20],
                "payment": {"value": 0},
                "cost": float(item["cost"]),
                "weight": int(item["weight"]),
                "amount": int(item["amount"]),
            }
            for item in items
        ]
        total_weight = sum(int(item["weight"]) * int(item["amount"]) for item in items)

        recipient = {"name": recipient_name, "phones": [{"number": recipient_phone}]}
        if recipient_email:
            recipient["email"] = recipient_email

        order_request = {
            "type": ORDER_TYPE_ONLINE_STORE,
            "number": order_number[:40],
            "tariff_code": tariff_code,
            "comment": comment or f"Заказ {order_number}",
            "sender": {
                "name": self.sender.get("name", ""),
                "phones": [{"number": self.sender.get("phone", "")}],
            },
            "recipient": recipient,
            "from_location": {
                "city": self.sender.get("city", ""),
                "address": self.sender.get("address", ""),
            },
            "packages": [{
                "number": "1",
                "weight": total_weight,
                "length": PACKAGE_LENGTH,
                "width": PACKAGE_WIDTH,
                "height": PACKAGE_HEIGHT,
                "items": cdek_items,
            }],
        }

        if delivery_point_code:
            order_request["delivery_point"] = delivery_point_code
        else:
            to_location = {"address": delivery_address or ""}
            if delivery_city:
                to_location["city"] = delivery_city
            if delivery_city_code:
                to_location["code"] = delivery_city_code
            order_request["to_location"] = to_location

        return order_request

    async def create_shop_order(self, **params) -> dict:
        """Регистрирует заказ интернет-магазина, параметры как у build_shop_order."""
        order_request = self.build_shop_order(**params)
        if self.log:
            await self.log.log_info("cdek", "Регистрация заказа", {"number": order_request["number"]})
        response = await self.create_order(order_request)
        if self.log:
            await self.log.log_info("cdek", "Заказ зарегистрирован", {"response": response})
        return response
