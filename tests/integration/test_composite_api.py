"""
HTTP tests for the composite edge: routes, error bodies and scope checks.

The composite service is wired against mocked downstream services and a
fake Kafka producer; nothing leaves the process.

Run: pytest tests/integration/test_composite_api.py -v
"""

import jwt
import httpx
import pytest
from fastapi.testclient import TestClient

from product_composite.core.config import Settings, get_settings
from product_composite.main import create_app
from tests.conftest import error_json

KEY = "integration-test-secret-key-long-enough"


def _token(scope: str) -> dict:
    token = jwt.encode({"sub": "writer", "scope": scope}, KEY, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


READ = _token("openid product:read")
WRITE = _token("openid product:write")

BODY = {
    "productId": 1,
    "name": "name",
    "weight": 1,
    "recommendations": [{"recommendationId": 1, "author": "a", "rate": 1, "content": "c"}],
    "reviews": [{"reviewId": 1, "author": "a", "subject": "s", "content": "c"}],
}


@pytest.fixture
def api(composite):
    app = create_app(composite=composite)
    app.dependency_overrides[get_settings] = lambda: Settings(JWT_KEY=KEY, AUTH_ENABLED=True)
    with TestClient(app) as client:
        yield client


class TestGetCompositeProduct:

    def test_found(self, api):
        response = api.get("/product-composite/1", headers=READ)

        assert response.status_code == 200
        body = response.json()
        assert body["productId"] == 1
        assert body["recommendations"] == []
        assert body["serviceAddresses"]["product"] == "p-1"

    def test_write_scope_can_read(self, api):
        assert api.get("/product-composite/1", headers=WRITE).status_code == 200

    def test_not_found(self, api, downstream):
        downstream.product = lambda req: httpx.Response(404, json=error_json(404, "No product found for productId: 2"))

        response = api.get("/product-composite/2", headers=READ)

        assert response.status_code == 404
        body = response.json()
        assert body["path"] == "/product-composite/2"
        assert body["status"] == 404
        assert body["message"] == "No product found for productId: 2"
        assert body["timestamp"]

    def test_invalid_id(self, api, downstream):
        response = api.get("/product-composite/-1", headers=READ)

        assert response.status_code == 422
        assert response.json()["message"] == "Invalid productId: -1"
        assert downstream.calls == []

    def test_non_numeric_id(self, api):
        response = api.get("/product-composite/no-integer", headers=READ)

        assert response.status_code == 422
        assert response.json()["path"] == "/product-composite/no-integer"

    def test_upstream_failure_is_bad_gateway(self, api, downstream):
        downstream.product = lambda req: httpx.Response(500, text="boom")

        response = api.get("/product-composite/1", headers=READ)

        assert response.status_code == 502
        assert response.json()["status"] == 502


class TestAuthorization:

    def test_missing_token(self, api):
        response = api.get("/product-composite/1")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_bad_token(self, api):
        response = api.get("/product-composite/1", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_read_scope_cannot_write(self, api, fake_producer):
        assert api.post("/product-composite", json=BODY, headers=READ).status_code == 403
        assert api.delete("/product-composite/1", headers=READ).status_code == 403
        assert fake_producer.sent == []

    def test_auth_can_be_disabled(self, composite):
        app = create_app(composite=composite)
        app.dependency_overrides[get_settings] = lambda: Settings(AUTH_ENABLED=False)
        with TestClient(app) as client:
            assert client.get("/product-composite/1").status_code == 200


class TestCommands:

    def test_create(self, api, fake_producer):
        response = api.post("/product-composite", json=BODY, headers=WRITE)

        assert response.status_code == 200
        assert [m["topic"] for m in fake_producer.sent] == ["products", "recommendations", "reviews"]

    def test_create_with_invalid_body(self, api, fake_producer):
        response = api.post("/product-composite", json={"productId": 1}, headers=WRITE)

        assert response.status_code == 422
        assert fake_producer.sent == []

    def test_delete(self, api, fake_producer):
        response = api.delete("/product-composite/1", headers=WRITE)

        assert response.status_code == 200
        assert len(fake_producer.sent) == 3

    def test_delete_invalid_id(self, api):
        response = api.delete("/product-composite/-1", headers=WRITE)

        assert response.status_code == 422
        assert response.json()["message"] == "Invalid productId: -1"


class TestHealth:

    def test_up_without_token(self, api):
        response = api.get("/actuator/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "UP"
        assert set(body["components"]) == {"product", "recommendation", "review"}

    def test_down(self, api, downstream):
        downstream.health = lambda req: httpx.Response(503)

        response = api.get("/actuator/health")

        assert response.status_code == 503
        assert response.json()["status"] == "DOWN"

    def test_openapi_document(self, api):
        assert api.get("/openapi/v3/api-docs").status_code == 200
