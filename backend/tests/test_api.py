"""End-to-end tests through the HTTP surface."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from imagegate.main import create_app
from imagegate.services import auth_service
from tests.conftest import ADMIN_TOKEN, image_candidate

PRO = "gemini-3-pro-image-preview"
ADMIN = {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def client(settings, fake_gemini):
    app = create_app(settings, gemini_transport=fake_gemini.transport)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def new_user(client):
    def _new_user(credits=100):
        response = client.post("/api/admin/users", json={"initialCredits": credits}, headers=ADMIN)
        assert response.status_code == 201
        return response.json()

    return _new_user


def bearer(user):
    return {"Authorization": f"Bearer {user['token']}"}


def transaction_count(client):
    return client.get("/api/debug/db").json()["transactions"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"


def test_database_check(client, new_user):
    new_user(0)

    response = client.get("/api/debug/db")

    assert response.status_code == 200
    assert response.json() == {"connected": True, "users": 1, "transactions": 0}


def test_models(client):
    models = {m["name"]: m for m in client.get("/api/models").json()}

    assert models[PRO]["creditsPerImage"] == 8
    assert models["gemini-2.5-flash-image"]["supportsImageSize"] is False


class TestVerify:
    def test_header_token(self, client, new_user):
        user = new_user(25)

        response = client.get("/api/verify", headers=bearer(user))

        assert response.status_code == 200
        assert response.json() == {"userId": user["userId"], "creditsBalance": 25}

    def test_plugin_header(self, client, new_user):
        user = new_user(5)

        response = client.get("/api/verify", headers={"X-Plugin-Token": user["token"]})

        assert response.json()["creditsBalance"] == 5

    def test_body_token(self, client, new_user):
        user = new_user(7)

        response = client.post("/api/verify", json={"token": user["token"]})

        assert response.status_code == 200
        assert response.json()["userId"] == user["userId"]

    def test_missing_token(self, client):
        response = client.get("/api/verify")

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"

    def test_unknown_token(self, client):
        response = client.post("/api/verify", json={"token": "nope"})

        assert response.status_code == 404
        assert response.json() == {"detail": "Invalid token", "code": "not_found"}

    def test_login_stamp_failure_does_not_block(self, client, new_user, monkeypatch):
        user = new_user(9)

        def broken_update(*args, **kwargs):
            raise OperationalError("UPDATE users", {}, Exception("database is locked"))

        monkeypatch.setattr(auth_service, "update", broken_update)

        response = client.get("/api/verify", headers=bearer(user))

        assert response.status_code == 200
        assert response.json() == {"userId": user["userId"], "creditsBalance": 9}

    def test_query_string_token_is_ignored(self, client, new_user):
        user = new_user(5)

        response = client.get("/api/verify", params={"token": user["token"]})

        assert response.status_code == 400


class TestGenerate:
    def test_requires_token(self, client):
        response = client.post("/api/generate", json={"model": PRO, "prompt": "x"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert transaction_count(client) == 0

    def test_unknown_token_is_unauthorized(self, client, fake_gemini):
        response = client.post(
            "/api/generate",
            json={"model": PRO, "prompt": "x"},
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401
        assert fake_gemini.calls == 0
        assert transaction_count(client) == 0

    def test_success_charges_delivered_images(self, client, new_user, fake_gemini):
        user = new_user(100)
        fake_gemini.reply([
            image_candidate("b25l"),
            image_candidate("dHdv", finish_reason="SAFETY"),
            image_candidate("dGhyZWU="),
            image_candidate("Zm91cg==", finish_reason="PROHIBITED_CONTENT"),
        ])

        response = client.post(
            "/api/generate",
            json={
                "model": PRO,
                "prompt": "a castle at dusk",
                "operation": "generate",
                "candidateCount": 4,
                "aspectRatio": "16:9",
                "resolution": "2k",
            },
            headers=bearer(user),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["dataUrls"] == ["data:image/png;base64,b25l", "data:image/png;base64,dGhyZWU="]
        assert body["creditsUsed"] == 16
        assert body["remainingCredits"] == 84
        assert (body["requestedCount"], body["actualCount"]) == (4, 2)
        assert fake_gemini.last_json()["generationConfig"]["imageConfig"] == {
            "aspectRatio": "16:9",
            "imageSize": "2K",
        }
        assert client.get("/api/verify", headers=bearer(user)).json()["creditsBalance"] == 84

    def test_insufficient_credits(self, client, new_user, fake_gemini):
        user = new_user(10)

        response = client.post(
            "/api/generate",
            json={"model": PRO, "prompt": "x", "candidateCount": 2},
            headers=bearer(user),
        )

        assert response.status_code == 400
        assert response.json() == {
            "detail": "Insufficient credits",
            "code": "insufficient_credits",
            "required": 16,
            "available": 10,
        }
        assert fake_gemini.calls == 0
        txns = client.get(f"/api/admin/users/{user['userId']}/transactions", headers=ADMIN).json()
        assert [t["operation"] for t in txns] == ["generate", "topup"]
        assert txns[0]["success"] is False

    def test_invalid_model(self, client, new_user):
        user = new_user(10)

        response = client.post(
            "/api/generate", json={"model": "gpt-image", "prompt": "x"}, headers=bearer(user),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_model"
        assert PRO in response.json()["validModels"]

    def test_upstream_timeout(self, client, new_user, fake_gemini):
        user = new_user(50)
        client.app.state.gemini_client.timeout_seconds = 0.05
        fake_gemini.delay = 1.0

        response = client.post(
            "/api/generate", json={"model": PRO, "prompt": "x"}, headers=bearer(user),
        )

        assert response.status_code == 504
        assert response.json()["code"] == "timeout"
        assert client.get("/api/verify", headers=bearer(user)).json()["creditsBalance"] == 50

    def test_malformed_body_is_bad_request(self, client, new_user):
        user = new_user(10)

        response = client.post(
            "/api/generate", json={"model": PRO, "prompt": "x", "candidateCount": "many"},
            headers=bearer(user),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"
        txns = client.get(f"/api/admin/users/{user['userId']}/transactions", headers=ADMIN).json()
        assert [t["operation"] for t in txns] == ["generate", "topup"]
        assert txns[0]["success"] is False
        assert txns[0]["creditsRemaining"] == 10

    def test_malformed_body_without_token_is_unauthorized(self, client):
        response = client.post("/api/generate", json={"candidateCount": "many"})

        assert response.status_code == 401
        assert transaction_count(client) == 0

class TestAdmin:
    def test_requires_admin_token(self, client):
        assert client.get("/api/admin/users").status_code == 403
        response = client.get("/api/admin/users", headers={"X-Admin-Token": "wrong"})
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_disabled_without_configured_token(self, settings, fake_gemini):
        settings.admin_token = ""
        app = create_app(settings, gemini_transport=fake_gemini.transport)
        with TestClient(app) as client:
            response = client.get("/api/admin/users", headers={"X-Admin-Token": ""})

        assert response.status_code == 403

    def test_create_and_list_users(self, client, new_user):
        first = new_user(0)
        second = new_user(30)

        users = client.get("/api/admin/users", headers=ADMIN).json()

        assert len(second["token"]) == 32 and second["token"] != first["token"]
        assert second["creditsBalance"] == 30
        assert {u["userId"] for u in users} == {first["userId"], second["userId"]}

    def test_add_credits(self, client, new_user):
        user = new_user(10)

        response = client.post(
            "/api/admin/add-credits",
            json={"userToken": user["token"], "amount": 15},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["creditsBalance"] == 25
        txns = client.get(f"/api/admin/users/{user['userId']}/transactions", headers=ADMIN).json()
        assert [t["creditsAdded"] for t in txns] == [15, 10]

    def test_add_credits_unknown_user(self, client):
        response = client.post(
            "/api/admin/add-credits",
            json={"userToken": "missing", "amount": 5},
            headers=ADMIN,
        )

        assert response.status_code == 404

    def test_add_credits_rejects_non_positive(self, client, new_user):
        user = new_user(10)

        response = client.post(
            "/api/admin/add-credits",
            json={"userToken": user["token"], "amount": 0},
            headers=ADMIN,
        )

        assert response.status_code == 400

    def test_create_user_legacy_path(self, client):
        response = client.post("/api/admin/create-user", json={"initialCredits": 3}, headers=ADMIN)

        assert response.status_code == 201
        assert response.json()["creditsBalance"] == 3
