import json
import time

from fastapi.testclient import TestClient

from load_analyzer.config import get_settings
from load_analyzer.main import app, get_limiter
from load_analyzer.security import TokenBucketLimiter, sign, stable_json, verify_signature

client = TestClient(app)

PAYLOAD = {
    "headers": ["Load ID", "Customer", "Driver/Carrier", "Pickup location", "Delivery location"],
    "rows": [
        ["3752463", "ACME", "Ali", "Shah Alam", "Penang"],
        ["3752463", "ACME", "Siti", "Klang", "Ipoh"],
    ],
    "environment": {"sheetTimezone": "Asia/Kuala_Lumpur"},
}


def reload_settings(monkeypatch, **env):
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    get_limiter.cache_clear()


def test_analyze_reports_duplicates():
    r = client.post("/analyze", json=PAYLOAD)
    assert r.status_code == 200

    data = r.json()
    assert data["ok"] is False
    assert "loads" not in data
    duplicate = [i for i in data["issues"] if i["code"] == "DUPLICATE_ID"]
    assert duplicate[0]["rows"] == [2, 3]
    assert data["meta"]["analyzedRows"] == 2
    assert data["meta"]["timezone"] == "Asia/Kuala_Lumpur"
    assert len(data["meta"]["requestId"]) == 8


def test_analyze_clean_payload_returns_loads():
    payload = dict(PAYLOAD, rows=[PAYLOAD["rows"][0]])
    data = client.post("/analyze", json=payload).json()
    assert data["ok"] is True
    assert data["loads"][0]["loadId"] == "3752463"
    assert data["loads"][0]["broker"] == "ACME"


def test_bad_body_is_rejected():
    r = client.post("/analyze", json={"headers": "nope", "rows": []})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Bad body:")


def test_invalid_json_is_rejected():
    r = client.post("/analyze", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400


def test_deeply_nested_json_is_rejected():
    r = client.post("/analyze", content=b"[" * 200000, headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("Bad body:")


def test_oversized_payload(monkeypatch):
    reload_settings(monkeypatch, MAX_PAYLOAD_BYTES="100")
    r = client.post("/analyze", json=PAYLOAD)
    assert r.status_code == 413


def test_signature_required_when_secret_set(monkeypatch):
    reload_settings(monkeypatch, HMAC_SECRET="s3cret")

    r = client.post("/analyze", json=PAYLOAD)
    assert r.status_code == 401

    timestamp = str(int(time.time() * 1000))
    headers = {
        "x-ttc-timestamp": timestamp,
        "x-ttc-signature": sign("s3cret", timestamp, PAYLOAD),
    }
    r = client.post("/analyze", json=PAYLOAD, headers=headers)
    assert r.status_code == 200


def test_rate_limit(monkeypatch):
    reload_settings(monkeypatch, RATE_LIMIT_RPM="2")
    assert client.get("/health").status_code == 200
    assert client.post("/analyze", json=PAYLOAD).status_code == 200
    assert client.post("/analyze", json=PAYLOAD).status_code == 200
    r = client.post("/analyze", json=PAYLOAD)
    assert r.status_code == 429
    assert int(r.headers["retry-after"]) >= 1


def test_stable_json_sorts_keys():
    assert stable_json({"b": 1, "a": [{"d": 2, "c": 3}]}) == '{"a":[{"c":3,"d":2}],"b":1}'
    assert json.loads(stable_json(PAYLOAD)) == PAYLOAD


def test_verify_signature_rules():
    body = {"headers": [], "rows": []}
    now_ms = 1_700_000_000_000
    ts = str(now_ms)
    good = sign("k", ts, body)

    assert verify_signature("", body, None, None)
    assert verify_signature("k", body, ts, good, now_ms=now_ms)
    assert not verify_signature("k", body, ts, good, now_ms=now_ms + 6 * 60 * 1000)
    assert not verify_signature("k", body, ts, "00" * 32, now_ms=now_ms)
    assert not verify_signature("k", body, "abc", good, now_ms=now_ms)
    assert not verify_signature("k", body, None, good, now_ms=now_ms)


def test_token_bucket_refills():
    limiter = TokenBucketLimiter(requests_per_minute=2)
    assert limiter.acquire("a", now=0.0) == (True, 0)
    assert limiter.acquire("a", now=0.0) == (True, 0)
    allowed, retry_after = limiter.acquire("a", now=0.0)
    assert not allowed and retry_after == 30
    # Other clients have their own bucket.
    assert limiter.acquire("b", now=0.0)[0]
    assert limiter.acquire("a", now=30.0)[0]


def test_token_bucket_forgets_idle_clients():
    limiter = TokenBucketLimiter(requests_per_minute=2)
    limiter.acquire("a", now=0.0)
    limiter.acquire("b", now=0.0)
    limiter.acquire("b", now=0.0)
    assert limiter.tracked_clients() == 2

    # "a" is full again after 30s, "b" is still refilling.
    limiter.acquire("c", now=30.0)
    assert limiter.tracked_clients() == 2
    limiter.acquire("c", now=120.0)
    assert limiter.tracked_clients() == 1
