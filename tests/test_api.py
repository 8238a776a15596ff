import pytest
from algosdk import account, util
from fastapi.testclient import TestClient

from backend import config
from backend.main import app
from record_store.ledger import InMemoryLedger


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(config, "DECRYPT_SETTLE_SECONDS", 0)
    monkeypatch.setattr(config, "VERIFY_SIGNATURES", False)
    config.use_ledger(InMemoryLedger())
    yield TestClient(app)
    config.use_ledger(None)


def _submit(client: TestClient, owner: str = "0xA", **overrides) -> str:
    body = {"owner": owner, "subject": "Physics", "test_score": 72, "study_hours": 3}
    body.update(overrides)
    resp = client.post("/records", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["record_id"]


def test_root_and_subjects(client: TestClient) -> None:
    assert client.get("/").json()["ledger"] == config.LEDGER_BACKEND
    subjects = client.get("/subjects").json()["subjects"]
    assert "Computer Science" in subjects
    assert len(subjects) == 9


def test_submit_and_list(client: TestClient) -> None:
    record_id = _submit(client)
    listing = client.get("/records").json()
    assert listing["record_count"] == 1
    (record,) = listing["records"]
    assert record["id"] == record_id
    assert record["status"] == "pending"
    assert record["study_hours"] == 3
    assert record["encrypted_score"].startswith("FHE-")

    assert client.get(f"/records/{record_id}").json()["owner"] == "0xA"


def test_error_mapping(client: TestClient) -> None:
    assert client.get("/records/nope").status_code == 404
    assert client.post("/records", json={"owner": "0xA", "subject": "Physics"}).status_code == 422
    assert client.post("/records", json={"owner": "0xA", "subject": "Alchemy", "test_score": 1}).status_code == 422
    assert client.post("/records", json={"owner": "0xA", "subject": "Physics", "test_score": 1, "study_hours": "inf"}).status_code == 422
    assert client.post("/records", json={"owner": "0xA", "subject": "Physics", "test_score": "nan"}).status_code == 422
    assert client.get("/records").json()["record_count"] == 0

    record_id = _submit(client)
    assert client.post(f"/records/{record_id}/analyze", json={"caller": "0xB"}).status_code == 403
    assert client.post(f"/records/{record_id}/archive", json={"caller": "0xA"}).status_code == 200
    conflict = client.post(f"/records/{record_id}/analyze", json={"caller": "0xA"})
    assert conflict.status_code == 409


def test_unavailable_ledger_maps_to_503(client: TestClient) -> None:
    config.use_ledger(InMemoryLedger(available=False))
    resp = client.post("/records", json={"owner": "0xA", "subject": "Physics", "test_score": 5})
    assert resp.status_code == 503
    assert client.get("/records").json()["record_count"] == 0


def test_analyze_and_dashboard(client: TestClient) -> None:
    record_id = _submit(client)
    _submit(client, subject="History", test_score=90, study_hours=1)

    resp = client.post(f"/records/{record_id}/analyze", json={"caller": "0xA"})
    assert resp.status_code == 200
    assert resp.json()["record"]["status"] == "analyzed"

    stats = client.get("/dashboard").json()
    assert stats["total_records"] == 2
    assert stats["pending_count"] == 1
    assert stats["analyzed_count"] == 1
    assert stats["total_study_hours"] == 4
    assert stats["subjects_covered"] == 2


def test_decrypt_flow(client: TestClient) -> None:
    record_id = _submit(client)

    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": "0xA"}).json()
    lines = opened["challenge"].split("\n")
    assert [line.split(":")[0] for line in lines] == [
        "publickey", "contractAddresses", "contractsChainId", "startTimestamp", "durationDays",
    ]
    assert lines[2] == f"contractsChainId:{config.CHAIN_ID}"

    resp = client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": "0xsigned"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["record_id"] == record_id
    assert body["value"] == 72
    advice = body["recommendation"]
    assert advice["record_id"] == record_id
    assert advice["suggested_study_hours"] == 4
    assert advice["message"].startswith("Based on your score of 72.0% in Physics, we recommend focusing on ")

    again = client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": "0xsigned"})
    assert again.status_code == 404


def test_decrypt_challenge_for_missing_record(client: TestClient) -> None:
    resp = client.post("/decrypt/challenge", json={"record_id": "nope", "caller": "0xA"})
    assert resp.status_code == 404


def test_empty_signature_is_rejected(client: TestClient) -> None:
    record_id = _submit(client)
    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": "0xA"}).json()
    resp = client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": ""})
    assert resp.status_code == 401


def test_cancel_decrypt(client: TestClient) -> None:
    record_id = _submit(client)
    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": "0xA"}).json()

    resp = client.delete(f"/decrypt/{opened['session_id']}")
    assert resp.json()["state"] == "cancelled"
    assert client.delete(f"/decrypt/{opened['session_id']}").status_code == 404


def test_hardened_decrypt_checks_wallet_signature(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(config, "VERIFY_SIGNATURES", True)
    private_key, address = account.generate_account()
    record_id = _submit(client, owner=address)

    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": address}).json()
    forged = client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": "0xsigned"})
    assert forged.status_code == 401

    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": address}).json()
    signature = util.sign_bytes(opened["challenge"].encode("utf-8"), private_key)
    resp = client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": signature})
    assert resp.status_code == 200
    assert resp.json()["value"] == 72


def test_open_decrypt_sessions_are_capped(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(config, "MAX_OPEN_DECRYPT_SESSIONS", 10)
    record_id = _submit(client)

    session_ids = [
        client.post("/decrypt/challenge", json={"record_id": record_id, "caller": "0xA"}).json()["session_id"]
        for _ in range(50)
    ]

    assert len(config.decrypt_sessions) == 10
    assert list(config.decrypt_sessions) == session_ids[-10:]
    evicted = client.post(f"/decrypt/{session_ids[0]}/signature", json={"signature": "0xsigned"})
    assert evicted.status_code == 404
    newest = client.post(f"/decrypt/{session_ids[-1]}/signature", json={"signature": "0xsigned"})
    assert newest.status_code == 200


def test_stale_decrypt_sessions_expire(client: TestClient) -> None:
    record_id = _submit(client)
    opened = client.post("/decrypt/challenge", json={"record_id": record_id, "caller": "0xA"}).json()
    session, _record_id, _caller = config.decrypt_sessions[opened["session_id"]]

    later = session.context.start_timestamp + config.DECRYPT_SESSION_TTL_SECONDS + 1
    assert config.prune_decrypt_sessions(now=later) == 1
    assert session.state.value == "cancelled"
    assert client.post(f"/decrypt/{opened['session_id']}/signature", json={"signature": "0xsigned"}).status_code == 404
