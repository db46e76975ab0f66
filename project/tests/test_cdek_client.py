import asyncio

import httpx
import pytest

from storefront.errors import (
    CarrierApiError,
    CarrierAuthError,
    CarrierConfigError,
    CarrierTransientError,
)
from storefront.services.cdek import CDEK_TEST_API_URL, CdekClient, CdekTokenProvider

from conftest import SENDER


async def test_token_is_cached(cdek, cdek_api):
    await cdek.get_regions()
    await cdek.get_cities()

    assert cdek_api.token_requests == 1
    assert all(call[1] != "/oauth/token" for call in cdek_api.calls[1:])


async def test_concurrent_callers_share_one_token_request(log):
    token_requests = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal token_requests
        if request.url.path.endswith("/oauth/token"):
            token_requests += 1
            await asyncio.sleep(0.05)
            return httpx.Response(200, json={"access_token": "shared", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer shared"
        return httpx.Response(200, json=[])

    client = CdekClient("id", "secret", retries=0, log=log, transport=httpx.MockTransport(handler))
    try:
        await asyncio.gather(*(client.get_regions() for _ in range(10)))
    finally:
        await client.aclose()

    assert token_requests == 1


async def test_token_refreshed_before_expiry(log):
    now = [1000.0]
    issued = []

    def handler(request: httpx.Request) -> httpx.Response:
        issued.append(now[0])
        return httpx.Response(200, json={"access_token": f"t{len(issued)}", "expires_in": 120})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        provider = CdekTokenProvider(http, "https://cdek.test/v2", "id", "secret", clock=lambda: now[0])

        assert await provider.get_token() == "t1"
        now[0] += 59
        assert await provider.get_token() == "t1"
        # за 60 секунд до истечения токен считается устаревшим
        now[0] += 2
        assert await provider.get_token() == "t2"


async def test_not_configured(log):
    client = CdekClient("", "", log=log)
    try:
        with pytest.raises(CarrierConfigError) as exc:
            await client.get_regions()
    finally:
        await client.aclose()
    assert exc.value.code == "carrier_config_missing"


async def test_bad_credentials_are_not_retried(log, cdek_api):
    cdek_api.token_status = 401
    client = CdekClient("id", "wrong", retries=3, log=log, transport=httpx.MockTransport(cdek_api))
    try:
        with pytest.raises(CarrierAuthError):
            await client.get_regions()
    finally:
        await client.aclose()
    assert cdek_api.token_requests == 1


async def test_transient_errors_are_retried(log):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth/token"):
            return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        attempts.append(request.url.path)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        if len(attempts) == 2:
            return httpx.Response(502, json={"message": "bad gateway"})
        return httpx.Response(200, json=[{"code": 1, "region": "Москва"}])

    client = CdekClient("id", "secret", retries=2, log=log, transport=httpx.MockTransport(handler))
    try:
        regions = await client.get_regions()
    finally:
        await client.aclose()

    assert regions == [{"code": 1, "region": "Москва"}]
    assert len(attempts) == 3


async def test_retry_budget_is_bounded(log):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth/token"):
            return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        attempts.append(1)
        return httpx.Response(503)

    client = CdekClient("id", "secret", retries=1, log=log, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(CarrierTransientError) as exc:
            await client.get_regions()
    finally:
        await client.aclose()

    assert exc.value.code == "carrier_transient"
    assert len(attempts) == 2


async def test_rejected_token_is_dropped(cdek, cdek_api):
    await cdek.get_regions()
    cdek_api.raw_responses["/location/regions"] = (401, {"errors": [{"message": "token expired"}]})

    with pytest.raises(CarrierAuthError):
        await cdek.get_regions()

    del cdek_api.raw_responses["/location/regions"]
    await cdek.get_regions()
    assert cdek_api.token_requests == 2


async def test_validation_error_is_api_error(cdek, cdek_api):
    cdek_api.raw_responses["/location/regions"] = (400, {"errors": [{"message": "bad country"}]})

    with pytest.raises(CarrierApiError) as exc:
        await cdek.get_regions(country_codes=["XX"])
    assert "bad country" in exc.value.message


async def test_tariffs_resolve_city_codes(cdek, cdek_api):
    tariffs = await cdek.tariffs_simple("Москва", "Новосибирск", weight=600)

    assert [t["tariff_code"] for t in tariffs] == [136, 137]
    suggest_queries = [call[2]["q"] for call in cdek_api.requests_to("/location/suggest/cities")]
    assert suggest_queries == ["Новосибирск", "Москва"]


async def test_unknown_city_falls_back_to_name(cdek, cdek_api):
    seen = []

    real_request = cdek.request

    async def spy(method, endpoint, params=None, json=None):
        if endpoint == "/calculator/tarifflist":
            seen.append(json)
        return await real_request(method, endpoint, params=params, json=json)

    cdek.request = spy
    await cdek.tariffs_simple("Москва", "Урюпинск")

    to_location = seen[0]["to_location"]
    assert "code" not in to_location
    assert to_location["city"] == "Урюпинск"
    assert seen[0]["from_location"]["code"] == 44


async def test_tariff_errors_in_body(cdek, cdek_api):
    cdek_api.raw_responses["/calculator/tarifflist"] = (200, {"errors": [{"message": "no tariffs"}]})

    with pytest.raises(CarrierApiError):
        await cdek.tariffs_simple("Москва", "Новосибирск")


@pytest.mark.parametrize("payload", [
    [{"code": "NSK1"}],
    {"deliverypoints": [{"code": "NSK1"}]},
    {"deliverypoint": {"code": "NSK1"}},
])
async def test_pickup_point_envelopes(cdek, cdek_api, payload):
    cdek_api.raw_responses["/deliverypoints"] = (200, payload)

    points = await cdek.pickup_points_simple("Новосибирск")

    assert points == [{"code": "NSK1"}]


async def test_unexpected_pickup_point_format(cdek, cdek_api):
    cdek_api.raw_responses["/deliverypoints"] = (200, {"something": "else"})
    assert await cdek.get_pickup_points(city_code=270) == []


def test_shop_order_to_pickup_point():
    client = CdekClient("id", "secret", sender=SENDER)
    order = client.build_shop_order(
        order_number="x" * 50,
        tariff_code=136,
        recipient_name="Анна",
        recipient_phone="+79991234567",
        items=[
            {"name": "Футболка" * 40, "ware_key": "RV-001-LONG-WARE-KEY-123", "cost": 1000, "weight": 300, "amount": 2},
            {"name": "Худи", "ware_key": 7, "cost": 3500, "weight": 700, "amount": 1},
        ],
        delivery_point_code="NSK1",
        delivery_address="игнорируется",
    )

    assert len(order["number"]) == 40
    assert order["delivery_point"] == "NSK1"
    assert "to_location" not in order
    package = order["packages"][0]
    assert package["weight"] == 300 * 2 + 700
    assert (package["length"], package["width"], package["height"]) == (30, 20, 10)
    assert all(item["payment"] == {"value": 0} for item in package["items"])
    assert len(package["items"][0]["name"]) == 255
    assert package["items"][0]["ware_key"] == "RV-001-LONG-WARE-KEY"
    assert package["items"][1]["ware_key"] == "7"
    assert order["sender"]["name"] == "RUES VERTES"
    assert order["from_location"]["city"] == "Москва"


def test_shop_order_to_door():
    client = CdekClient("id", "secret", sender=SENDER)
    order = client.build_shop_order(
        order_number="order-1",
        tariff_code=137,
        recipient_name="Анна",
        recipient_phone="+79991234567",
        items=[{"name": "Худи", "ware_key": "RV-002", "cost": 3500, "weight": 700, "amount": 1}],
        delivery_city="Новосибирск",
        delivery_city_code=270,
        delivery_address="ул. Ленина, 1",
    )

    assert "delivery_point" not in order
    assert order["to_location"] == {"address": "ул. Ленина, 1", "city": "Новосибирск", "code": 270}


def test_sandbox_url():
    assert CdekClient("id", "secret", test_mode=True).base_url == CDEK_TEST_API_URL


@pytest.mark.parametrize("body", [{"token_type": "bearer"}, {"access_token": ""}, ["token"]])
async def test_token_response_without_access_token(log, body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    client = CdekClient("id", "secret", retries=0, log=log, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(CarrierAuthError):
            await client.get_regions()
    finally:
        await client.aclose()
