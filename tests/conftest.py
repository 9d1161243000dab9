import itertools
import os

# Avant l'import de l'app: pas de Redis en tests, hôte du TestClient autorisé
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver,api.test")

import pytest
from typing import Any, Dict, Generator, Optional
from fastapi.testclient import TestClient

from backend import config
from backend.app import app as fastapi_app
from backend.payments.signature import compute_signature

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


@pytest.fixture(scope="session")
def app():
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


# Registres JSON et fichiers dans un répertoire temporaire, secrets de test
@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "RECORDS_DIR", tmp_path / "data")
    monkeypatch.setattr(config, "UPLOAD_DIR", tmp_path / "uploads")
    monkeypatch.setattr(config, "RAZORPAY_KEY_ID", TEST_KEY_ID)
    monkeypatch.setattr(config, "RAZORPAY_KEY_SECRET", TEST_KEY_SECRET)
    monkeypatch.setattr(config, "RAZORPAY_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(config, "UPLOAD_REQUIRES_PAYMENT", True)
    monkeypatch.delenv("LOCAL_RATE_LIMIT_FALLBACK", raising=False)
    return tmp_path


def sign_payment(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    return compute_signature(f"{order_id}|{payment_id}".encode("utf-8"), secret)


@pytest.fixture
def sign():
    return sign_payment


class FakeRazorpay:
    """Remplace les appels REST de la passerelle (backend.payments.razorpay_client)."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.fail_with: Optional[Exception] = None

    def create_order(self, *, amount, currency, receipt, notes=None):
        if self.fail_with:
            raise self.fail_with
        order = {
            "id": f"order_test_{next(self._ids)}",
            "entity": "order",
            "status": "created",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": {str(k): str(v) for k, v in (notes or {}).items()},
        }
        self.orders[order["id"]] = order
        return order

    def fetch_payment(self, payment_id):
        if self.fail_with:
            raise self.fail_with
        return self.payments.get(payment_id) or {"id": payment_id, "status": "captured", "amount": 0, "currency": "INR"}


@pytest.fixture
def fake_gateway(monkeypatch) -> FakeRazorpay:
    fake = FakeRazorpay()
    monkeypatch.setattr("backend.payments.razorpay_client.create_order", fake.create_order)
    monkeypatch.setattr("backend.payments.razorpay_client.fetch_payment", fake.fetch_payment)
    return fake


@pytest.fixture
def paid_payment(fake_gateway, sign) -> Dict[str, str]:
    """Crée une commande et enregistre un paiement vérifié (prérequis des uploads)."""
    from backend.payments import service as payments_service

    order = payments_service.create_payment_order(amount=59000, currency="INR", receipt="receipt_fixture")
    payments_service.verify_payment(
        payment_id="pay_fixture", order_id=order["id"], signature_value=sign(order["id"], "pay_fixture")
    )
    return {"orderId": order["id"], "paymentId": "pay_fixture"}


class FakeBucket:
    """Bucket Supabase Storage minimal: URLs d'écriture signées déterministes."""

    def __init__(self):
        self.signed = []

    def create_signed_upload_url(self, path):
        self.signed.append(path)
        return {
            "signed_url": f"https://storage.test/object/upload/sign/documents/{path}?token=tok",
            "signedUrl": f"https://storage.test/object/upload/sign/documents/{path}?token=tok",
            "token": "tok",
            "path": path,
        }


@pytest.fixture
def fake_bucket(monkeypatch) -> FakeBucket:
    bucket = FakeBucket()
    monkeypatch.setattr("backend.uploads.storage.get_storage_bucket", lambda bucket_name=None: bucket)
    return bucket


def pdf_bytes(size: int = 2048) -> bytes:
    header = b"%PDF-1.4\n"
    return header + b"0" * max(0, size - len(header))


@pytest.fixture
def make_pdf():
    return pdf_bytes
