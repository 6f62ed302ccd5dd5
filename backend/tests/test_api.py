from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.errors import StoreUnavailable
from app.main import create_app
from app.security.cipher import CredentialCipher
from app.security.rate_limit import InMemoryWindowRateLimiter
from conftest import ADMIN_SECRET, POOL, PSK, TODAY, make_proof, make_settings


def _client(settings, store, clock, **kwargs) -> TestClient:
    return TestClient(create_app(settings, store=store, clock=clock, **kwargs))


@pytest.fixture()
def settings():
    return make_settings(identity_daily_limit=2, secret_daily_limit=90)


@pytest.fixture()
def client(settings, memory_store, clock) -> TestClient:
    return _client(settings, memory_store, clock)


def _body(identity_id: str, proof: str | None = None) -> dict[str, str]:
    return {"identity_id": identity_id, "proof": proof if proof is not None else make_proof(identity_id)}


def test_issue_credential_returns_sealed_key_and_quotas(client):
    r = client.post("/v1/credentials", json=_body("device-1"), headers={"x-request-id": "req-123"})

    assert r.status_code == 200
    assert r.headers["x-request-id"] == "req-123"
    data = r.json()
    assert CredentialCipher(PSK).open(data["encrypted_credential"]) == POOL[0]
    assert data["remaining_identity_daily_quota"] == 1
    assert data["remaining_secret_daily_quota"] == 89
    assert data["remaining_identity_lifetime_quota"] == 49


def test_legacy_path_accepts_legacy_field_names(client):
    r = client.post("/api/get-api-key", json={"deviceId": "device-1", "hmac": make_proof("device-1")})

    assert r.status_code == 200
    assert CredentialCipher(PSK).open(r.json()["encrypted_credential"]) == POOL[0]
    assert "x-request-id" in r.headers


def test_rejections_carry_distinct_codes(memory_store, clock):
    client = _client(make_settings(secrets=["only"], secret_daily_limit=2, identity_daily_limit=1), memory_store, clock)

    bad = client.post("/v1/credentials", json=_body("device-1", proof="bm90IGEgcHJvb2Y="))
    assert (bad.status_code, bad.json()["code"]) == (401, "AUTHENTICATION_FAILED")

    missing = client.post("/v1/credentials", json={})
    assert (missing.status_code, missing.json()["code"]) == (401, "AUTHENTICATION_FAILED")

    assert client.post("/v1/credentials", json=_body("device-1")).status_code == 200
    quota = client.post("/v1/credentials", json=_body("device-1"))
    assert (quota.status_code, quota.json()["code"]) == (403, "IDENTITY_QUOTA_EXCEEDED")

    assert client.post("/v1/credentials", json=_body("device-2")).status_code == 200
    exhausted = client.post("/v1/credentials", json=_body("device-3"))
    assert (exhausted.status_code, exhausted.json()["code"]) == (429, "POOL_EXHAUSTED")
    assert exhausted.json()["error"] == "All API keys have reached their daily limit. Please try again later."


@pytest.mark.parametrize("headers", [{}, {"x-admin-secret": "nope"}, {"x-admin-secret": PSK}])
def test_admin_endpoints_require_admin_secret(client, headers):
    for method, path in [
        ("post", "/v1/admin/reset-metrics"),
        ("post", "/v1/admin/identities"),
        ("get", "/v1/admin/usage"),
        ("get", "/api/reset-metrics"),
    ]:
        r = getattr(client, method)(path, headers=headers)
        assert r.status_code == 401
        assert r.json() == {"error": "Unauthorized", "code": "AUTHENTICATION_FAILED"}


def test_reset_metrics_via_legacy_cron_header(client, clock):
    assert client.post("/v1/credentials", json=_body("device-1")).status_code == 200
    clock.advance()

    first = client.get("/api/reset-metrics", headers={"x-cron-secret": ADMIN_SECRET})
    second = client.post("/v1/admin/reset-metrics", headers={"x-admin-secret": ADMIN_SECRET})

    assert first.status_code == 200
    assert first.json()["message"] == "Daily metrics reset successfully."
    assert first.json()["day"] == (TODAY + timedelta(days=1)).isoformat()
    assert first.json()["keys_reset"] == 1
    assert first.json()["cursor_reset"] is True
    assert second.json()["keys_reset"] == 0
    assert second.json()["cursor_reset"] is False


def test_registered_identity_can_request_credentials(client):
    r = client.post("/v1/admin/identities", headers={"x-admin-secret": ADMIN_SECRET})

    assert r.status_code == 201
    identity_id = r.json()["identity_id"]
    assert len(identity_id) >= 32
    issued = client.post("/v1/credentials", json=_body(identity_id))
    assert issued.status_code == 200
    assert issued.json()["remaining_identity_lifetime_quota"] == 49


def test_usage_report_lists_fingerprints_only(client, settings):
    client.post("/v1/credentials", json=_body("device-1"))
    client.post("/v1/credentials", json=_body("device-2"))

    r = client.get("/v1/admin/usage", headers={"x-admin-secret": ADMIN_SECRET})

    assert r.status_code == 200
    data = r.json()
    assert data["last_index"] == 1
    assert data["identities_active"] == 2
    assert [k["hits"] for k in data["keys"]] == [1, 1, 0]
    assert [k["secret_id"] for k in data["keys"]] == settings.pool.secret_ids
    assert data["keys"][0]["remaining"] == 89
    for secret in POOL:
        assert secret not in r.text


def test_client_rate_limit(settings, memory_store, clock):
    client = _client(settings, memory_store, clock, limiter=InMemoryWindowRateLimiter(limit=2, window_seconds=60))

    codes = [client.post("/v1/credentials", json=_body(f"device-{i}")).status_code for i in range(3)]

    assert codes == [200, 200, 429]
    r = client.post("/v1/credentials", json=_body("device-9"))
    assert r.json()["code"] == "RATE_LIMITED"
    # Rejected before reaching the ledger.
    assert memory_store.get_identity_usage("device-9", clock.today()).lifetime_uses == 0


class _FailingStore:
    def __init__(self, inner, exc: Exception):
        self._inner = inner
        self._exc = exc

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def load_snapshot(self, *args, **kwargs):
        raise self._exc


@pytest.mark.parametrize(
    "exc",
    [
        StoreUnavailable("load_snapshot failed: connection refused to db.internal:5432"),
        OperationalError("SELECT 1", {}, Exception("connection refused")),
    ],
)
def test_store_outage_is_reported_generically(settings, memory_store, clock, exc):
    client = _client(settings, _FailingStore(memory_store, exc), clock)

    r = client.post("/v1/credentials", json=_body("device-1"))

    assert r.status_code == 503
    assert r.json() == {"error": "Service temporarily unavailable.", "code": "STORE_UNAVAILABLE"}
    assert "db.internal" not in r.text


def test_sql_backed_app_issues_credentials(settings, sql_store, clock):
    client = _client(settings, sql_store, clock)

    first = client.post("/v1/credentials", json=_body("device-1"))
    second = client.post("/v1/credentials", json=_body("device-1"))
    third = client.post("/v1/credentials", json=_body("device-1"))

    cipher = CredentialCipher(PSK)
    assert [cipher.open(r.json()["encrypted_credential"]) for r in (first, second)] == POOL[:2]
    assert third.status_code == 403


def test_forwarded_for_header_cannot_dodge_rate_limit(settings, memory_store, clock):
    client = _client(settings, memory_store, clock, limiter=InMemoryWindowRateLimiter(limit=2, window_seconds=60))

    codes = [
        client.post(
            "/v1/credentials", json=_body(f"device-{i}"), headers={"x-forwarded-for": f"10.0.0.{i}"}
        ).status_code
        for i in range(6)
    ]

    assert codes == [200, 200, 429, 429, 429, 429]


def test_forwarded_for_is_honoured_behind_trusted_proxy(memory_store, clock):
    settings = make_settings(trust_proxy_headers=True)
    client = _client(settings, memory_store, clock, limiter=InMemoryWindowRateLimiter(limit=1, window_seconds=60))

    def post(i: int, ip: str) -> int:
        return client.post(
            "/v1/credentials", json=_body(f"device-{i}"), headers={"x-forwarded-for": f"{ip}, 172.16.0.1"}
        ).status_code

    assert [post(0, "10.0.0.1"), post(1, "10.0.0.2"), post(2, "10.0.0.1")] == [200, 200, 429]
