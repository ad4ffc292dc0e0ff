# tests/test_api.py
from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from locker import metrics
from locker.api.app import create_app
from locker.config import DAY_SECONDS, default_locker_config
from locker.runtime.executor import LockerExecutor
from locker.testing.sigtools import account_for, signed_request

T0 = 1_700_000_000
YEAR = 365 * DAY_SECONDS


def _client(tmp_path: Path) -> TestClient:
    cfg = replace(
        default_locker_config(),
        mode="dev",
        owner=account_for("owner"),
        db_path=str(tmp_path / "locker.db"),
        genesis_balances={account_for("alice"): 10_000},
    )
    app = create_app(boot_runtime=False)
    app.state.executor = LockerExecutor(cfg=cfg, clock=lambda: T0)
    return TestClient(app)


def _deposit(client: TestClient, *, nonce: int = 1, amount: int = 1000) -> dict:
    req = signed_request(label="alice", action="deposit", nonce=nonce, payload={"amount": amount, "duration": YEAR})
    r = client.post("/v1/requests/submit", json=req)
    assert r.status_code == 200, r.text
    return r.json()


def test_health_without_executor() -> None:
    app = create_app(boot_runtime=False)
    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True, "ready": False, "seq": 0}

        r = client.get("/v1/locks/count")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "not_ready"


def test_create_app_boots_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from locker.api import app as api_app

    for k in ("LOCKER_MODE", "LOCKER_DB_PATH", "LOCKER_LOG_LEVEL"):
        monkeypatch.setenv(k, "")

    sentinel = object()
    monkeypatch.setattr(api_app, "build_executor", lambda: sentinel)
    monkeypatch.setattr(api_app, "load_locker_config", lambda: replace(default_locker_config(), mode="dev"))

    app = api_app.create_app(boot_runtime=True)
    assert app.state.executor is sentinel


def test_submit_deposit_and_read_lock(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = account_for("alice")

    out = _deposit(client)
    assert out["ok"] is True
    assert out["result"] == {"lock_id": 0}

    r = client.get("/v1/locks/count")
    assert r.json() == {"lock_count": 1}

    r = client.get("/v1/locks/0")
    assert r.status_code == 200
    assert r.json() == {
        "lock_id": 0,
        "amount": 1000,
        "locked_at": T0,
        "lock_duration": YEAR,
        "owner": alice,
        "destroyed": False,
    }

    r = client.get(f"/v1/accounts/{alice}")
    body = r.json()
    assert body["asset_balance"] == 9000
    assert body["dividend_balance"] == 1500
    assert body["next_nonce"] == 2

    r = client.get(f"/v1/requests/{out['request_id']}")
    assert r.status_code == 200
    assert r.json()["action"] == "deposit"


def test_missing_lock_and_receipt_are_404(tmp_path: Path) -> None:
    client = _client(tmp_path)

    r = client.get("/v1/locks/7")
    assert r.status_code == 404
    assert r.json()["ok"] is False
    assert r.json()["error"]["code"] == "not_found"

    r = client.get("/v1/requests/deadbeef")
    assert r.status_code == 404


def test_multiplier_and_withdrawal_params(tmp_path: Path) -> None:
    client = _client(tmp_path)

    r = client.get("/v1/multiplier", params={"duration": YEAR})
    assert r.status_code == 200
    assert r.json()["multiplier"] == 1_500_000_000_000_000_000

    r = client.get("/v1/multiplier", params={"duration": 5})
    assert r.status_code == 400
    assert r.json()["error"] == {
        "code": "policy",
        "message": "duration_out_of_bounds",
        "details": {"duration": 5, "min_lock_duration": 30 * DAY_SECONDS, "max_lock_duration": YEAR},
    }

    r = client.get("/v1/withdrawal-params", params={"amount": 1000, "locked_at": T0, "lock_duration": YEAR})
    assert r.status_code == 200
    body = r.json()
    assert body["dividend_shares"] == 1500
    assert body["early_withdrawal_fee"] == 150
    assert body["now"] == T0


def test_rejected_requests_map_to_status_codes(tmp_path: Path) -> None:
    client = _client(tmp_path)

    req = signed_request(label="alice", action="deposit", nonce=1, payload={"amount": 1000, "duration": YEAR})
    req["sig"] = signed_request(label="bob", action="deposit", nonce=1, payload={"amount": 1000, "duration": YEAR})["sig"]
    r = client.post("/v1/requests/submit", json=req)
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "bad_signature"

    _deposit(client)
    r = client.post(
        "/v1/requests/submit",
        json=signed_request(label="bob", action="withdraw", nonce=1, payload={"lock_id": 0, "amount": 1}),
    )
    assert r.status_code == 403
    assert r.json()["error"]["message"] == "not_lock_owner"

    r = client.post(
        "/v1/requests/submit",
        json=signed_request(label="alice", action="withdraw", nonce=2, payload={"lock_id": 0, "amount": 5000}),
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "insufficient_balance"

    r = client.post(
        "/v1/requests/submit",
        json=signed_request(label="alice", action="withdraw", nonce=2, payload={"lock_id": 9, "amount": 1}),
    )
    assert r.status_code == 404

    r = client.post("/v1/requests/submit", json={"action": "deposit", "caller": "x", "nonce": 0, "sig": ""})
    assert r.status_code == 422


def test_policy_and_events(tmp_path: Path) -> None:
    client = _client(tmp_path)
    _deposit(client)
    client.post(
        "/v1/requests/submit",
        json=signed_request(label="alice", action="withdraw", nonce=2, payload={"lock_id": 0, "amount": 1000}),
    )

    r = client.get("/v1/policy")
    body = r.json()
    assert body["pending_fees"] == 150
    assert body["lock_count"] == 1
    assert body["min_lock_duration"] == 30 * DAY_SECONDS
    assert body["locker_address"] == "locker"

    r = client.get("/v1/events")
    body = r.json()
    assert body["total"] == 3
    assert [e["name"] for e in body["events"]] == ["lock_created", "fees_received", "lock_destroyed"]

    r = client.get("/v1/events", params={"after": 2, "limit": 10})
    assert [e["seq"] for e in r.json()["events"]] == [3]


def test_metrics_endpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    client = _client(tmp_path)

    monkeypatch.delenv("LOCKER_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("LOCKER_METRICS_ENABLED", "1")
    metrics.reset()
    _deposit(client)

    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "locker_deposits 1" in r.text
    assert "locker_lock_count 1" in r.text
    metrics.reset()


def test_fractional_amount_is_a_bad_request(tmp_path: Path) -> None:
    client = _client(tmp_path)
    req = signed_request(label="alice", action="deposit", nonce=1, payload={"amount": 999.9, "duration": YEAR})

    r = client.post("/v1/requests/submit", json=req)
    assert r.status_code == 400
    assert r.json()["error"] == {
        "code": "invalid_request",
        "message": "missing_or_invalid_field",
        "details": {"field": "amount"},
    }
    assert client.get("/v1/locks/count").json() == {"lock_count": 0}
