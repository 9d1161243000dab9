import asyncio

import httpx
import pytest

from backend.payments import repository as payments_repository
from backend.uploads import repository as uploads_repository
from intake_client import ApiService, CustomerContact, OrderSession, SessionStatus

PDF = b"%PDF-1.4\n" + b"0" * 4096


class _RoutingTransport(httpx.AsyncBaseTransport):
    """API servie en mémoire (ASGI) et stockage objet simulé pour les URL signées."""

    def __init__(self, app, storage):
        self._api = httpx.ASGITransport(app=app)
        self._storage = storage

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "storage.test":
            await request.aread()
            self._storage[request.url.path] = request.content
            return httpx.Response(200, json={"Key": request.url.path})
        return await self._api.handle_async_request(request)


class _SigningLauncher:
    """Checkout simulé: paie la commande et signe comme la passerelle (clé secrète de test)."""

    def __init__(self, sign, dismiss_first=False):
        self._sign = sign
        self._dismiss_next = dismiss_first
        self.opened = []

    def launch(self, order, options, handle):
        self.opened.append(options)
        if self._dismiss_next:
            self._dismiss_next = False
            handle.dismiss()
            return
        payment_id = f"pay_{order.gateway_order_id}"
        handle.succeed(payment_id, order.gateway_order_id, self._sign(order.gateway_order_id, payment_id))


def _session(app, launcher, strategy, storage):
    api = ApiService("http://api.test", transport=_RoutingTransport(app, storage))
    return OrderSession.start(
        user_id="user-42",
        launcher=launcher,
        api=api,
        strategy=strategy,
        customer=CustomerContact("Asha", "asha@example.com", "9999999999"),
        payment_timeout=5,
    )


@pytest.mark.parametrize("strategy", ["direct", "presigned"])
def test_checkout_end_to_end(app, fake_gateway, fake_bucket, sign, strategy):
    storage = {}
    launcher = _SigningLauncher(sign)
    session = _session(app, launcher, strategy, storage)

    async def scenario():
        async with session:
            await session.load_pricing_config()
            for i in range(5):
                session.stage_file(f"statement-{i}.pdf", PDF, "application/pdf", document_type_id="balance-sheet")
            assert session.calculation.total_minor_units == 265500
            progress = []
            outcome = await session.checkout(progress.append)
            return outcome, progress

    outcome, progress = asyncio.run(scenario())

    assert outcome.error is None
    assert outcome.state.status is SessionStatus.COMPLETED
    completed = outcome.completed
    assert completed.amount == 265500
    assert completed.total_documents == 5
    assert progress[-1] == 100

    order = fake_gateway.orders[completed.gateway_order_id]
    assert order["amount"] == 265500
    assert order["notes"]["customerRef"] == "user-42"
    assert launcher.opened[0]["key"] == "rzp_test_key"

    paid = [r for r in payments_repository.list_order_records(completed.gateway_order_id) if r["status"] == "paid"]
    assert len(paid) == 1

    record = uploads_repository.get_upload(completed.upload_id)
    assert record["userId"] == "user-42"
    assert record["paymentId"] == completed.payment_id
    assert record["strategy"] == strategy
    assert len(record["files"]) == 5
    assert record["pricingSnapshot"]["totalAmount"] == 2655.0
    assert record["customerInfo"]["email"] == "asha@example.com"
    if strategy == "presigned":
        assert len(storage) == 5
        assert len(fake_bucket.signed) == 5
    else:
        assert storage == {}


def test_cancelled_checkout_then_retry(app, fake_gateway, fake_bucket, sign):
    storage = {}
    launcher = _SigningLauncher(sign, dismiss_first=True)
    session = _session(app, launcher, "presigned", storage)

    async def scenario():
        async with session:
            session.stage_file("itr.pdf", PDF, "application/pdf", document_type_id="itr-review")
            first = await session.checkout()
            assert first.state.status is SessionStatus.CANCELLED
            assert storage == {}
            session.retry()
            return await session.checkout()

    outcome = asyncio.run(scenario())
    assert outcome.state.status is SessionStatus.COMPLETED
    assert len(fake_gateway.orders) == 2
    assert uploads_repository.list_user_uploads("user-42")[0]["uploadId"] == outcome.completed.upload_id


def test_forged_signature_blocks_upload(app, fake_gateway, fake_bucket):
    storage = {}
    session = _session(app, _SigningLauncher(lambda order_id, payment_id: "f" * 64), "presigned", storage)

    async def scenario():
        async with session:
            session.stage_file("itr.pdf", PDF, "application/pdf", document_type_id="itr-review")
            return await session.checkout()

    outcome = asyncio.run(scenario())
    assert outcome.state.status is SessionStatus.FAILED
    assert outcome.state.reason == "verification failed"
    assert storage == {}
    assert uploads_repository.list_user_uploads("user-42") == []
