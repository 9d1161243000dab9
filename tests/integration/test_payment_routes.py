import json

from backend.payments import repository
from backend.payments.signature import compute_signature


def _create(client, amount=236000, **extra):
    payload = {"amount": amount, "currency": "INR", "receipt": "receipt_1", "notes": {"documents": 4}, **extra}
    return client.post("/api/payment/create-order", json=payload)


def test_create_order_flattened_response(client, fake_gateway):
    r = _create(client)
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["id"] == "order_test_1"
    assert data["amount"] == 236000
    assert data["currency"] == "INR"
    assert data["receipt"] == "receipt_1"
    assert data["notes"] == {"documents": "4"}
    assert repository.get_order("order_test_1")["status"] == "created"


def test_create_order_invalid_amount(client, fake_gateway):
    r = _create(client, amount=-5)
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "Amount should be a positive integer in paise"}
    assert fake_gateway.orders == {}


def test_create_order_missing_fields(client, fake_gateway):
    r = client.post("/api/payment/create-order", json={"amount": 100})
    assert r.status_code == 400
    assert r.json()["error"].startswith("Missing required fields")


def test_create_order_gateway_down(client, fake_gateway):
    from backend.errors import GatewayError

    fake_gateway.fail_with = GatewayError("Payment gateway unreachable, please try again")
    r = _create(client)
    assert r.status_code == 502
    assert r.json() == {"success": False, "error": "Payment gateway unreachable, please try again"}


def test_verify_valid_and_invalid_signature(client, fake_gateway, sign):
    order_id = _create(client).json()["id"]

    bad = client.post("/api/payment/verify", json={"paymentId": "pay_1", "orderId": order_id, "signature": "0" * 64})
    assert bad.status_code == 400
    assert bad.json() == {"success": False, "error": "Invalid payment signature"}

    ok = client.post("/api/payment/verify", json={"paymentId": "pay_1", "orderId": order_id, "signature": sign(order_id, "pay_1")})
    assert ok.status_code == 200
    assert ok.json()["success"] is True
    assert ok.json()["paymentId"] == "pay_1"
    assert ok.json()["orderId"] == order_id


def test_verify_missing_fields(client):
    r = client.post("/api/payment/verify", json={"paymentId": "pay_1"})
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_payment_status(client, fake_gateway):
    fake_gateway.payments["pay_9"] = {"id": "pay_9", "status": "authorized", "amount": 1000, "currency": "INR"}
    r = client.get("/api/payment/status/pay_9")
    assert r.status_code == 200
    assert r.json()["payment"]["status"] == "authorized"


def _webhook_body(event, payment_id="pay_w"):
    return json.dumps({
        "event": event,
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": "order_w", "amount": 500, "currency": "INR"}}},
    }).encode()


def test_webhook_signed_event_applied_once(client):
    body = _webhook_body("payment.captured")
    headers = {"X-Razorpay-Signature": compute_signature(body, "test_webhook_secret"), "Content-Type": "application/json"}

    first = client.post("/api/payment/webhook", content=body, headers=headers)
    assert first.status_code == 200
    assert first.json() == {"success": True, "status": "ok", "event": "payment.captured", "applied": True}
    second = client.post("/api/payment/webhook", content=body, headers=headers)
    assert second.json()["applied"] is False


def test_webhook_rejects_bad_signature(client):
    body = _webhook_body("payment.captured")
    r = client.post("/api/payment/webhook", content=body, headers={"X-Razorpay-Signature": "nope"})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert repository.list_order_records("order_w") == []


def test_webhook_unknown_event_ignored(client):
    body = _webhook_body("refund.processed")
    r = client.post("/api/payment/webhook", content=body, headers={"X-Razorpay-Signature": compute_signature(body, "test_webhook_secret")})
    assert r.json() == {"success": True, "status": "ignored", "event": "refund.processed"}


def test_checkout_config_route(client):
    r = client.get("/api/payment/config")
    assert r.status_code == 200
    cfg = r.json()["config"]
    assert cfg["keyId"] == "rzp_test_key"
    assert "test_key_secret" not in r.text
