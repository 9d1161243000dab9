from fastapi.testclient import TestClient
from fastapi_limiter import FastAPILimiter

from backend.app_setup.factory import create_app


def test_create_order_limited_through_redis(monkeypatch, fake_gateway):
    # Limiter réel (fastapi-limiter) sur un Redis en mémoire
    monkeypatch.setenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "0")
    monkeypatch.setenv("USE_FAKE_REDIS_FOR_TESTS", "1")
    monkeypatch.setattr(FastAPILimiter, "redis", None)
    app = create_app()
    payload = {"amount": 100, "currency": "INR", "receipt": "receipt_rl"}

    with TestClient(app) as client:
        assert client.get("/health/rate-limit").json()["backend"] == "redis"
        for attempt in range(10):
            r = client.post("/api/payment/create-order", json=payload)
            assert r.status_code == 200, f"unexpected {r.status_code} on attempt {attempt + 1}"

        blocked = client.post("/api/payment/create-order", json=payload)
        assert blocked.status_code == 429
        assert blocked.json()["success"] is False
        assert "retry-after" in blocked.headers

        # Autre chemin: fenêtre distincte
        assert client.get("/api/payment/config").status_code == 200
