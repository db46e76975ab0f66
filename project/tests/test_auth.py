from datetime import timedelta

from storefront.utils.security import create_access_token


async def test_register_and_login(client):
    registered = await client.post("/auth/register", json={
        "name": "Анна", "login": "anna", "password": "secret", "email": "anna@example.com",
    })
    assert registered.status_code == 201, registered.text
    user = registered.json()
    assert user["login"] == "anna"
    assert user["is_admin"] is False
    assert user["is_subscribed"] is False
    assert "password" not in user

    token = await client.post("/auth/token", data={"username": "anna", "password": "secret"})
    assert token.status_code == 200
    body = token.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["login"] == "anna"

    cart = await client.get("/cart", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert cart.status_code == 200


async def test_duplicate_login(client, factory):
    await factory.user(login="anna")
    response = await client.post("/auth/register", json={"login": "anna", "password": "other"})
    assert response.status_code == 400


async def test_wrong_password(client, factory):
    await factory.user(login="anna", password="secret")
    response = await client.post("/auth/token", data={"username": "anna", "password": "wrong"})
    assert response.status_code == 401


async def test_invalid_token(client):
    response = await client.get("/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


async def test_expired_token(client, factory):
    user = await factory.user()
    token = create_access_token({"sub": user.login}, expires_delta=timedelta(minutes=-1))

    response = await client.get("/orders", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Токен истёк"


async def test_token_for_deleted_user(client):
    token = create_access_token({"sub": "ghost"})
    response = await client.get("/cart", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
