import uuid

import pytest
from httpx import ASGITransport, AsyncClient
from jose import JWTError, jwt
from vandesk.core.auth.security import create_access_token, decode_access_token
from vandesk.dependencies import get_db
from vandesk.main import app
from vandesk.settings import get_settings


def test_access_token_roundtrip():
    user_id = uuid.uuid4()
    payload = decode_access_token(create_access_token(user_id))
    assert payload["sub"] == str(user_id)
    assert payload["type"] == "access"


def test_expired_token_rejected():
    token = create_access_token(uuid.uuid4(), expires_minutes=-1)
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_wrong_token_type_rejected():
    s = get_settings()
    token = jwt.encode({"sub": str(uuid.uuid4()), "type": "refresh"}, s.JWT_SECRET, algorithm=s.JWT_ALGORITHM)
    with pytest.raises(JWTError):
        decode_access_token(token)


@pytest.fixture
async def client(db):
    async def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


async def test_bearer_token_loads_user(client, ops_user, incident):
    token = create_access_token(ops_user.id)
    r = await client.get("/incidents", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert [i["id"] for i in r.json()] == [str(incident.id)]


async def test_missing_or_bad_token_is_401(client, ops_user):
    assert (await client.get("/incidents")).status_code == 401
    r = await client.get("/incidents", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


async def test_inactive_user_is_401(db, client, ops_user):
    ops_user.status = "disabled"
    await db.flush()
    r = await client.get("/incidents", headers={"Authorization": f"Bearer {create_access_token(ops_user.id)}"})
    assert r.status_code == 401
