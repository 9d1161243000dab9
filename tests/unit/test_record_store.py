import threading

import pytest

from backend.infra.record_store import CorruptedStoreError, JsonRecordStore, get_store


def test_missing_file_reads_as_empty(tmp_path):
    store = JsonRecordStore(tmp_path / "none.json")
    assert store.all() == []
    assert store.find(lambda r: True) is None


def test_corrupted_file_reads_as_empty_but_is_never_overwritten(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonRecordStore(path)
    assert store.all() == []

    with pytest.raises(CorruptedStoreError):
        store.append({"n": 99})
    with pytest.raises(CorruptedStoreError):
        store.append_if_absent({"n": 99}, lambda r: False)
    with pytest.raises(CorruptedStoreError):
        store.update_first(lambda r: True, {"n": 1})
    assert path.read_text(encoding="utf-8") == "{not json"


def test_truncated_file_keeps_existing_records(tmp_path):
    path = tmp_path / "records.json"
    store = JsonRecordStore(path)
    for n in range(3):
        store.append({"n": n})
    content = path.read_text(encoding="utf-8")
    path.write_text(content[: len(content) // 2], encoding="utf-8")

    with pytest.raises(CorruptedStoreError):
        store.append({"n": 99})
    assert "99" not in path.read_text(encoding="utf-8")


def test_non_list_document_is_not_overwritten(tmp_path):
    path = tmp_path / "records.json"
    path.write_text('{"n": 1}', encoding="utf-8")
    with pytest.raises(CorruptedStoreError):
        JsonRecordStore(path).append({"n": 2})
    assert path.read_text(encoding="utf-8") == '{"n": 1}'


def test_append_and_query(tmp_path):
    store = get_store(tmp_path / "records.json")
    store.append({"id": 1, "kind": "a"})
    store.append({"id": 2, "kind": "b"})
    store.append({"id": 3, "kind": "a"})
    assert [r["id"] for r in store.filter(lambda r: r["kind"] == "a")] == [1, 3]
    assert store.find(lambda r: r["id"] == 2)["kind"] == "b"
    # une autre instance sur le même fichier voit les mêmes données
    assert len(JsonRecordStore(tmp_path / "records.json").all()) == 3


def test_append_if_absent(tmp_path):
    store = get_store(tmp_path / "records.json")
    first, created = store.append_if_absent({"key": "k", "v": 1}, lambda r: r["key"] == "k")
    again, created_again = store.append_if_absent({"key": "k", "v": 2}, lambda r: r["key"] == "k")
    assert created is True and created_again is False
    assert again == first
    assert len(store.all()) == 1


def test_update_first(tmp_path):
    store = get_store(tmp_path / "records.json")
    store.append({"id": 1, "status": "uploaded"})
    updated = store.update_first(lambda r: r["id"] == 1, {"status": "processed"})
    assert updated["status"] == "processed"
    assert store.all()[0]["status"] == "processed"
    assert store.update_first(lambda r: r["id"] == 99, {"status": "x"}) is None


def test_concurrent_appends_are_not_lost(tmp_path):
    path = tmp_path / "concurrent.json"
    threads_count, per_thread = 8, 25

    def worker(n):
        store = JsonRecordStore(path)
        for i in range(per_thread):
            store.append({"thread": n, "i": i})

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    records = JsonRecordStore(path).all()
    assert len(records) == threads_count * per_thread
    assert len({(r["thread"], r["i"]) for r in records}) == threads_count * per_thread


def test_concurrent_append_if_absent_creates_once(tmp_path):
    path = tmp_path / "idempotent.json"
    results = []
    lock = threading.Lock()

    def worker():
        _, created = JsonRecordStore(path).append_if_absent({"paymentId": "pay_1"}, lambda r: r["paymentId"] == "pay_1")
        with lock:
            results.append(created)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1
    assert len(JsonRecordStore(path).all()) == 1
