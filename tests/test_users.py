import pytest

from conftest import auth
from streamcoin.core.security import VerifiedIdentity, extract_bearer_token
from streamcoin.core.exceptions import UnauthorizedError
from streamcoin.models.user import UserAccount
from streamcoin.services import users as user_service


async def test_setup_new_user_grants_bonus_once(db):
    user, created = await user_service.setup_new_user(VerifiedIdentity("u1", "u1@example.com"))
    assert created is True
    assert user.coins == 550
    assert user.subscription_tier == "none"
    assert user.is_live is False

    user, created = await user_service.setup_new_user(VerifiedIdentity("u1", "u1@example.com"))
    assert created is False
    assert (await UserAccount.get("u1")).coins == 550


async def test_setup_keeps_existing_balance(make_user):
    await make_user("u1", coins=3)
    _, created = await user_service.setup_new_user(VerifiedIdentity("u1", "u1@example.com"))
    assert created is False
    assert (await UserAccount.get("u1")).coins == 3


async def test_route_setup_new_user(client):
    r = await client.post("/api/setupNewUser", headers=auth("u1"))
    assert r.status_code == 201
    assert r.json()["user"]["coins"] == 550
    assert r.json()["user"]["email"] == "u1@example.com"
    r = await client.post("/api/setupNewUser", headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["message"] == "User profile already exists."


async def test_route_me(client, make_user):
    await make_user("u1", coins=42)
    r = await client.get("/api/users/me", headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["coins"] == 42


async def test_route_me_without_profile(client):
    r = await client.get("/api/users/me", headers=auth("u1"))
    assert r.status_code == 404


async def test_missing_bearer_is_401(client):
    r = await client.post("/api/setupNewUser")
    assert r.status_code == 401
    r = await client.post("/api/setupNewUser", headers={"Authorization": "Basic abc"})
    assert r.status_code == 401


async def test_invalid_bearer_is_403(client):
    r = await client.post("/api/setupNewUser", headers={"Authorization": "Bearer forged"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "INVALID_TOKEN"


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    with pytest.raises(UnauthorizedError):
        extract_bearer_token(None)
    with pytest.raises(UnauthorizedError):
        extract_bearer_token("Bearer ")
