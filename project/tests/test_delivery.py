SUGGESTIONS = [
    {"code": 270, "city": "Новосибирск"},
    {"code": 1, "city": "Новосибирская область"},
    {"code": 2, "city": "Новороссийск"},
    {"code": 3, "city": "Новое Девяткино"},
] + [{"code": 100 + i, "city": f"Новосибирск-{i}"} for i in range(12)]


async def test_city_suggestions(client, cdek_api):
    cdek_api.suggestions = SUGGESTIONS

    response = await client.get("/delivery", params={"action": "cities", "q": "сибир"})

    assert response.status_code == 200
    cities = response.json()["cities"]
    assert len(cities) == 10
    assert all("сибир" in city["city"].lower() for city in cities)
    assert cdek_api.requests_to("/location/suggest/cities")[0][2] == {"q": "сибир", "size": "20"}


async def test_city_search_requires_query(client):
    response = await client.get("/delivery", params={"action": "cities"})
    assert response.status_code == 400
    assert response.json()["code"] == "delivery_bad_request"


async def test_regions(client, cdek_api):
    response = await client.get("/delivery", params={"action": "regions", "country_codes": "RU,KZ"})

    assert response.status_code == 200
    assert response.json()["regions"][0]["region"] == "Москва"
    params = cdek_api.requests_to("/location/regions")[0][2]
    assert params["country_codes"] in ("RU", "KZ")


async def test_simple_tariffs_from_shop_city(client, cdek_api):
    response = await client.get("/delivery", params={"toCity": "Новосибирск", "weight": 600})

    assert response.status_code == 200
    assert [t["tariff_code"] for t in response.json()["tariffs"]] == [136, 137]
    queries = [call[2]["q"] for call in cdek_api.requests_to("/location/suggest/cities")]
    assert "Москва" in queries


async def test_tariff_failure_returns_empty_list(client, cdek_api):
    cdek_api.tariff_status = 500

    response = await client.get("/delivery", params={
        "action": "tariffs", "fromCity": "Москва", "toCity": "Новосибирск",
    })

    assert response.status_code == 200
    assert response.json() == {"tariffs": []}


async def test_tariffs_require_both_cities(client):
    response = await client.get("/delivery", params={"action": "tariffs", "toCity": "Новосибирск"})
    assert response.status_code == 400


async def test_pickup_points_for_city(client, cdek_api):
    response = await client.post("/delivery", json={"city": "Новосибирск"})

    assert response.status_code == 200
    assert response.json()["pickupPoints"][0]["code"] == "NSK1"
    assert cdek_api.requests_to("/deliverypoints")[0][2] == {"city": "Новосибирск"}


async def test_pickup_points_require_city(client):
    response = await client.post("/delivery", json={})
    assert response.status_code == 400


async def test_pickup_points_with_filters(client, cdek_api):
    response = await client.post(
        "/delivery",
        params={"action": "pickup-points"},
        json={"city_code": 270, "type": "PVZ", "is_handout": True},
    )

    assert response.status_code == 200
    params = cdek_api.requests_to("/deliverypoints")[0][2]
    assert params == {"city_code": "270", "type": "PVZ", "is_handout": "true"}


async def test_pickup_point_filters_are_validated(client):
    response = await client.post("/delivery", params={"action": "pickup-points"}, json={"city_code": "abc"})
    assert response.status_code == 400


async def test_pickup_points_unavailable(client, cdek_api):
    cdek_api.raw_responses["/deliverypoints"] = (503, {"message": "maintenance"})

    response = await client.post("/delivery", json={"city": "Новосибирск"})

    assert response.status_code == 200
    assert response.json() == {"pickupPoints": []}


async def test_carrier_not_configured(client, cdek):
    cdek.tokens.client_id = ""

    response = await client.get("/delivery", params={"action": "regions"})

    assert response.status_code == 500
    assert response.json()["code"] == "carrier_config_missing"


# ────────────── Виджет ──────────────
async def test_widget_status(client):
    response = await client.get("/delivery/widget")
    assert response.json() == {"status": "ok", "message": "CDEK widget service", "testMode": False}


async def test_widget_offices_param_mapping(client, cdek_api):
    response = await client.get("/delivery/widget", params={
        "action": "offices", "city": "270", "country": "RU", "page": "0", "size": "100", "type": "PVZ",
    })

    assert response.status_code == 200
    assert response.json()[0]["code"] == "NSK1"
    params = cdek_api.requests_to("/deliverypoints")[0][2]
    assert params == {"city_code": "270", "country_code": "RU", "type": "PVZ"}


async def test_widget_unknown_action(client):
    response = await client.get("/delivery/widget", params={"action": "orders"})
    assert response.status_code == 400

    response = await client.post("/delivery/widget", json={"action": "delete"})
    assert response.status_code == 400


async def test_widget_calculator(client, cdek_api):
    response = await client.post("/delivery/widget", json={
        "from_location": {"code": 44},
        "to_location": {"code": 270},
        "packages": [{"weight": 500}],
    })

    assert response.status_code == 200
    assert response.json()["tariff_codes"][0]["tariff_code"] == 136
    assert len(cdek_api.requests_to("/calculator/tarifflist")) == 1


async def test_rejected_carrier_keys_are_not_hidden(client, cdek_api):
    cdek_api.token_status = 401

    response = await client.get("/delivery", params={"toCity": "Новосибирск"})

    assert response.status_code == 502
    assert response.json()["code"] == "carrier_auth_error"


async def test_missing_carrier_keys_are_not_hidden(client, cdek):
    cdek.tokens.client_id = ""

    response = await client.get("/delivery", params={
        "action": "tariffs", "fromCity": "Москва", "toCity": "Новосибирск",
    })

    assert response.status_code == 500
    assert response.json()["code"] == "carrier_config_missing"


async def test_rejected_tariff_request_returns_empty_list(client, cdek_api):
    cdek_api.raw_responses["/calculator/tarifflist"] = (400, {"errors": [{"message": "bad package"}]})

    response = await client.get("/delivery", params={"toCity": "Новосибирск"})

    assert response.status_code == 200
    assert response.json() == {"tariffs": []}
