import asyncio
import json

from backend.uploads import service as uploads_service

PDF_HEADER = b"%PDF-1.4\n"


def pdf_bytes(size):
    return PDF_HEADER + b"0" * max(0, size - len(PDF_HEADER))


def _multipart(n=2, size=2048):
    return [("files", (f"doc{i}.pdf", pdf_bytes(size), "application/pdf")) for i in range(n)]


def _form(payment_id=None, user_id="u1"):
    return {
        "userId": user_id,
        "customerInfo": json.dumps({"name": "Asha", "email": "asha@example.com"}),
        "pricingSnapshot": json.dumps({"totalAmount": 1180.0}),
        "metadata": json.dumps({"paymentId": payment_id} if payment_id else {}),
    }


def test_direct_upload_without_payment_is_402(client):
    r = client.post("/api/uploads/files", data=_form(), files=_multipart())
    assert r.status_code == 402
    assert r.json() == {"success": False, "error": "A verified payment is required before uploading files"}


def test_direct_upload_after_payment(client, paid_payment):
    r = client.post("/api/uploads/files", data=_form(paid_payment["paymentId"]), files=_multipart())
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["uploadId"].startswith("upload_")
    assert [f["originalName"] for f in data["files"]] == ["doc0.pdf", "doc1.pdf"]

    status = client.get(f"/api/uploads/status/{data['uploadId']}").json()
    assert status["upload"]["status"] == "uploaded"

    listing = client.get("/api/uploads/user/u1").json()
    assert listing["uploads"][0]["fileCount"] == 2
    assert listing["uploads"][0]["pricingSnapshot"] == {"totalAmount": 1180.0}

    processed = client.post(f"/api/uploads/{data['uploadId']}/processed")
    assert processed.json()["status"] == "processed"
    assert client.post(f"/api/uploads/{data['uploadId']}/processed").status_code == 404


def test_direct_upload_store_runs_outside_event_loop(client, paid_payment, monkeypatch):
    seen = []
    store = uploads_service.store_direct_upload

    def recording_store(**kwargs):
        try:
            asyncio.get_running_loop()
            seen.append("event-loop")
        except RuntimeError:
            seen.append("worker")
        return store(**kwargs)

    monkeypatch.setattr(uploads_service, "store_direct_upload", recording_store)
    r = client.post("/api/uploads/files", data=_form(paid_payment["paymentId"]), files=_multipart())
    assert r.status_code == 200
    assert seen == ["worker"]


def test_reused_payment_is_409(client, paid_payment):
    first = client.post("/api/uploads/files", data=_form(paid_payment["paymentId"]), files=_multipart())
    assert first.status_code == 200
    again = client.post("/api/uploads/files", data=_form(paid_payment["paymentId"]), files=_multipart())
    assert again.status_code == 409
    assert again.json() == {"success": False, "error": "This payment has already been used for an upload"}


def test_direct_upload_validation_errors(client, paid_payment):
    form = _form(paid_payment["paymentId"])
    too_small = client.post("/api/uploads/files", data=form, files=_multipart(size=100))
    assert too_small.status_code == 400
    assert "too small" in too_small.json()["error"]

    wrong_type = client.post("/api/uploads/files", data=form, files=[("files", ("a.exe", b"0" * 2048, "application/x-msdownload"))])
    assert wrong_type.status_code == 400

    none = client.post("/api/uploads/files", data=form)
    assert none.status_code == 400
    assert none.json()["error"] == "No files provided"

    bad_json = client.post("/api/uploads/files", data={**form, "metadata": "{oops"}, files=_multipart())
    assert bad_json.status_code == 400
    assert bad_json.json()["error"] == "metadata must be valid JSON"


def test_status_unknown_upload(client):
    r = client.get("/api/uploads/status/upload_missing")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Upload not found"}


def test_presigned_flow(client, fake_bucket, paid_payment):
    payment_id = paid_payment["paymentId"]
    keys = []
    for name in ("a.pdf", "b.png"):
        presigned = client.post("/api/uploads/presign", json={
            "userId": "u1", "fileName": name, "size": 4096,
            "contentType": "application/pdf" if name.endswith("pdf") else "image/png",
            "paymentId": payment_id,
        })
        assert presigned.status_code == 200
        body = presigned.json()
        assert body["uploadUrl"].startswith("https://storage.test/")
        keys.append(body["key"])
        reg = client.post("/api/uploads/register", json={
            "userId": "u1", "key": body["key"], "originalName": name, "size": 4096,
            "contentType": "application/pdf" if name.endswith("pdf") else "image/png", "paymentId": payment_id,
        })
        assert reg.json()["created"] is True

    done = client.post("/api/uploads/complete", json={"userId": "u1", "keys": keys, "paymentId": payment_id})
    assert done.status_code == 200
    assert [f["originalName"] for f in done.json()["files"]] == ["a.pdf", "b.png"]


def test_presign_without_payment_is_402(client, fake_bucket):
    r = client.post("/api/uploads/presign", json={"userId": "u1", "fileName": "a.pdf", "size": 4096, "contentType": "application/pdf"})
    assert r.status_code == 402
    assert fake_bucket.signed == []


def test_complete_with_unregistered_key(client, paid_payment):
    r = client.post("/api/uploads/complete", json={"userId": "u1", "keys": ["u1/ghost.pdf"], "paymentId": paid_payment["paymentId"]})
    assert r.status_code == 400
    assert "u1/ghost.pdf" in r.json()["error"]


def test_presign_body_validation(client):
    r = client.post("/api/uploads/presign", json={"userId": "u1"})
    assert r.status_code == 400
    assert r.json()["success"] is False
