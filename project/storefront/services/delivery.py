# storefront/services/delivery.py

"""
Запросы виджета доставки к СДЭК через сервер.
Ключи СДЭК в браузер не попадают.
"""

from typing import Optional

from fastapi import Request

from storefront.config import settings
from storefront.errors import CarrierApiError, CarrierTransientError, DeliveryRequestError

CITY_SUGGEST_SIZE = 20
CITY_RESULTS_LIMIT = 10

# параметры виджета -> параметры /deliverypoints
OFFICE_PARAM_NAMES = {"city": "city_code", "country": "country_code"}
OFFICE_SKIPPED_PARAMS = {"page", "size"}

WIDGET_GET_ACTIONS = {
    "offices": "/deliverypoints",
    "cities": "/location/cities",
    "regions": "/location/regions",
}


# ────────────── Города и регионы ──────────────
async def search_cities_service(query: Optional[str], request: Request) -> list[dict]:
    """Подсказки городов: 20 от СДЭК, из них до 10 с вхождением запроса в название."""
    if not query or not query.strip():
        raise DeliveryRequestError("Параметр q (query) обязателен для поиска городов")

    cities = await request.app.state.cdek.suggest_cities(query, size=CITY_SUGGEST_SIZE)
    needle = query.strip().lower()
    return [
        city for city in cities
        if needle in (city.get("city") or city.get("name") or "").lower()
    ][:CITY_RESULTS_LIMIT]


async def list_regions_service(country_codes: Optional[str], region: Optional[str], request: Request) -> list[dict]:
    return await request.app.state.cdek.get_regions(
        country_codes=country_codes.split(",") if country_codes else None,
        region=region,
    )


# ────────────── Тарифы ──────────────
async def tariffs_service(
    from_city: Optional[str],
    to_city: Optional[str],
    weight: int,
    request: Request,
    simple: bool = False,
) -> list[dict]:
    """
    Тарифы между городами. Временная недоступность или отказ СДЭК дают
    пустой список; ошибки настройки и авторизации СДЭК пробрасываются.
    """
    cdek = request.app.state.cdek
    log = request.app.state.log

    if simple:
        from_city = from_city or settings.SENDER_CITY
        if not to_city:
            raise DeliveryRequestError("Город получателя обязателен")
    elif not from_city or not to_city:
        raise DeliveryRequestError("Города отправления и получения обязательны")

    try:
        if simple:
            return await cdek.tariffs_simple(from_city, to_city, weight=weight)
        return await cdek.calculate_tariffs({
            "from_location": {"city": from_city, "address": from_city},
            "to_location": {"city": to_city, "address": to_city},
            "packages": [{"number": "1", "weight": weight}],
        })
    except (CarrierTransientError, CarrierApiError) as e:
        await log.log_warning("delivery", "Тарифы СДЭК недоступны", {
            "from_city": from_city,
            "to_city": to_city,
            "code": e.code,
            "error": e.message,
        })
        return []


# ────────────── ПВЗ ──────────────
async def pickup_points_service(filters: dict, request: Request) -> list[dict]:
    """ПВЗ по фильтрам; недоступность СДЭК даёт пустой список."""
    try:
        return await request.app.state.cdek.get_pickup_points(**filters)
    except CarrierTransientError as e:
        await request.app.state.log.log_warning("delivery", "ПВЗ недоступны", {
            "filters": filters,
            "error": e.message,
        })
        return []


async def pickup_points_for_city_service(city: Optional[str], request: Request) -> list[dict]:
    if not city:
        raise DeliveryRequestError("Город обязателен")
    return await pickup_points_service({"city": city}, request)


# ────────────── Виджет ──────────────
def office_params(params: dict) -> dict:
    return {
        OFFICE_PARAM_NAMES.get(key, key): value
        for key, value in params.items()
        if key not in OFFICE_SKIPPED_PARAMS
    }


async def widget_get_service(params: dict, request: Request):
    cdek = request.app.state.cdek
    params = dict(params)
    action = params.pop("action", None)

    if not action:
        return {"status": "ok", "message": "CDEK widget service", "testMode": cdek.test_mode}

    endpoint = WIDGET_GET_ACTIONS.get(action)
    if endpoint is None:
        raise DeliveryRequestError(f"Неизвестное действие виджета: {action}")

    if action == "offices":
        params = office_params(params)
    return await cdek.proxy("GET", endpoint, params=params)


async def widget_post_service(body: dict, request: Request):
    cdek = request.app.state.cdek
    params = dict(body)
    action = params.pop("action", None)

    # без action виджет присылает расчёт тарифов
    if action is None or action in ("calculate", "calculator"):
        return await cdek.proxy("POST", "/calculator/tarifflist", json=params)
    if action == "offices":
        return await cdek.proxy("GET", "/deliverypoints", params=params)

    raise DeliveryRequestError(f"Неизвестное действие виджета: {action}")
