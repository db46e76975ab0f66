# storefront/routes/delivery.py

from typing import Optional

from fastapi import APIRouter, Body, Query, Request
from pydantic import ValidationError

from storefront.errors import DeliveryRequestError
from storefront.schemas.delivery import PickupPointsQuery
from storefront.services.delivery import (
    list_regions_service,
    pickup_points_for_city_service,
    pickup_points_service,
    search_cities_service,
    tariffs_service,
    widget_get_service,
    widget_post_service,
)

router = APIRouter()


# ────────────── Города / регионы / тарифы ──────────────
@router.get(
    "",
    summary="Данные СДЭК для оформления заказа",
    responses={
        200: {"description": "cities | regions | tariffs"},
        400: {"description": "Не передан обязательный параметр"},
        500: {"description": "СДЭК не настроен (carrier_config_missing)"},
        502: {"description": "Ошибка авторизации в СДЭК (carrier_auth_error)"},
        503: {"description": "СДЭК недоступен (carrier_transient)"},
    },
)
async def delivery_lookup(
    request: Request,
    action: Optional[str] = None,
    q: Optional[str] = None,
    country_codes: Optional[str] = None,
    region: Optional[str] = None,
    from_city: Optional[str] = Query(None, alias="fromCity"),
    to_city: Optional[str] = Query(None, alias="toCity"),
    weight: int = 1000,
):
    """
    - `?action=cities&q=Моск` – подсказки городов (до 10)
    - `?action=regions&country_codes=RU` – регионы
    - `?action=tariffs&fromCity=...&toCity=...&weight=1000` – все тарифы
    - `?toCity=...` – тарифы из города магазина (простой формат)

    Ошибка расчёта тарифов возвращает пустой список.
    """
    try:
        if action == "cities":
            return {"cities": await search_cities_service(q, request)}
        if action == "regions":
            return {"regions": await list_regions_service(country_codes, region, request)}
        if action == "tariffs":
            return {"tariffs": await tariffs_service(from_city, to_city, weight, request)}
        return {"tariffs": await tariffs_service(from_city, to_city, weight, request, simple=True)}
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка при запросе к СДЭК: {str(e)}", {"action": action})
        raise


# ────────────── ПВЗ ──────────────
@router.post(
    "",
    summary="Пункты выдачи СДЭК",
    responses={
        200: {"description": "Список ПВЗ"},
        400: {"description": "Не указан город или неверные фильтры"},
    },
)
async def delivery_pickup_points(request: Request, action: Optional[str] = None, body: dict = Body(...)):
    """
    - `{city}` – ПВЗ в городе
    - `?action=pickup-points` + фильтры СДЭК (city_code, type, is_handout, ...)
    """
    try:
        if action == "pickup-points":
            try:
                filters = PickupPointsQuery.model_validate(body).model_dump(exclude_none=True)
            except ValidationError as e:
                raise DeliveryRequestError(f"Неверные фильтры ПВЗ: {e.error_count()} ошибок")
            return {"pickupPoints": await pickup_points_service(filters, request)}
        return {"pickupPoints": await pickup_points_for_city_service(body.get("city"), request)}
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка при получении ПВЗ: {str(e)}", {"action": action})
        raise


# ────────────── Виджет ──────────────
@router.get(
    "/widget",
    summary="Сервис для виджета СДЭК (GET)",
    responses={
        200: {"description": "Ответ СДЭК как есть; без action статус сервиса"},
        400: {"description": "Неизвестное действие"},
    },
)
async def widget_get(request: Request):
    params = dict(request.query_params)
    try:
        return await widget_get_service(params, request)
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка виджета: {str(e)}", {"params": params})
        raise


@router.post(
    "/widget",
    summary="Сервис для виджета СДЭК (POST, расчёт тарифов)",
    responses={
        200: {"description": "Ответ СДЭК как есть"},
        400: {"description": "Неизвестное действие"},
    },
)
async def widget_post(request: Request, body: dict = Body(...)):
    try:
        return await widget_post_service(body, request)
    except Exception as e:
        await request.app.state.log.log_error("delivery", f"Ошибка виджета: {str(e)}", {"action": body.get("action")})
        raise
