from campusnet.models.user_model import User
from tests.conftest import auth_headers


async def test_signup_login_me(client):
    res = await client.post(
        "/auth/signup",
        json={"username": "dana", "password": "correct-horse", "email": "Dana@Campus.edu"},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["username"] == "dana"
    assert body["role"] == "GENERAL"

    res = await client.post("/auth/login", json={"username": "dana", "password": "correct-horse"})
    assert res.status_code == 200
    token = res.json()["access_token"]

    res = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["id"] == body["id"]


async def test_signup_conflicts(client):
    payload = {"username": "dana", "password": "correct-horse", "email": "dana@campus.edu"}
    assert (await client.post("/auth/signup", json=payload)).status_code == 201

    res = await client.post("/auth/signup", json={**payload, "username": "other"})
    assert res.status_code == 409
    assert res.json() == {"msg": "Email already exists"}

    res = await client.post("/auth/signup", json={**payload, "email": "other@campus.edu"})
    assert res.status_code == 409
    assert res.json() == {"msg": "Username already exists"}


async def test_login_rejects_bad_password(client):
    await client.post(
        "/auth/signup",
        json={"username": "dana", "password": "correct-horse", "email": "dana@campus.edu"},
    )
    res = await client.post("/auth/login", json={"username": "dana", "password": "wrong-horse"})
    assert res.status_code == 401
    assert res.json() == {"msg": "Invalid username or password"}


async def test_signup_validation_uses_envelope(client):
    res = await client.post("/auth/signup", json={"username": "d", "password": "short", "email": "x"})
    assert res.status_code == 422
    assert res.json()["msg"].startswith("Invalid ")


async def test_me_requires_token(client):
    res = await client.get("/auth/me")
    assert res.status_code == 401
    assert res.json() == {"msg": "Not authenticated"}

    res = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json() == {"msg": "Could not validate credentials"}


async def test_token_for_deleted_user_is_rejected(client, alice, session_factory):
    headers = auth_headers(alice)
    async with session_factory() as s:
        await s.delete(await s.get(User, alice.id))
        await s.commit()
    res = await client.get("/auth/me", headers=headers)
    assert res.status_code == 401
