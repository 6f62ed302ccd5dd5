from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from app.core.errors import StoreInvariantViolation
from app.main import create_app
from app.models import RotationState
from conftest import ADMIN_SECRET, POOL, PSK, TODAY, make_proof, make_settings


def _events(caplog, logger_name: str) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == logger_name]


def test_access_log_is_structured(memory_store, clock, caplog):
    client = TestClient(create_app(make_settings(), store=memory_store, clock=clock))

    with caplog.at_level(logging.INFO, logger="keyrelay"):
        client.post(
            "/v1/credentials",
            json={"identity_id": "device-1", "proof": make_proof("device-1")},
            headers={"x-request-id": "req-1"},
        )

    access = _events(caplog, "keyrelay")
    assert access[-1]["event"] == "access"
    assert access[-1]["request_id"] == "req-1"
    assert access[-1]["path"] == "/v1/credentials"
    assert access[-1]["status_code"] == 200


def test_issuance_events_name_outcome_without_secrets(memory_store, clock, caplog):
    client = TestClient(create_app(make_settings(identity_daily_limit=1), store=memory_store, clock=clock))
    proof = make_proof("device-1")

    with caplog.at_level(logging.INFO, logger="keyrelay"):
        client.post("/v1/credentials", json={"identity_id": "device-1", "proof": proof})
        client.post("/v1/credentials", json={"identity_id": "device-1", "proof": proof})
        client.post("/v1/credentials", json={"identity_id": "device-2", "proof": "AAAA"})
        client.post("/v1/admin/reset-metrics", headers={"x-admin-secret": ADMIN_SECRET})

    events = _events(caplog, "keyrelay.enforcer")
    assert [e["event"] for e in events] == ["credential_issued", "credential_rejected", "credential_rejected"]
    assert events[0]["day"] == clock.today().isoformat()
    assert [e["state"] for e in events[1:]] == ["REJECTED_IDENTITY_QUOTA", "REJECTED_AUTH"]
    assert _events(caplog, "keyrelay.reset")[0]["event"] == "daily_reset"

    text = caplog.text
    for secret in [*POOL, PSK, ADMIN_SECRET, proof]:
        assert secret not in text


def test_store_failures_are_logged_with_context(sql_store, caplog):
    with sql_store.engine.begin() as conn:
        conn.execute(delete(RotationState))

    with caplog.at_level(logging.ERROR, logger="keyrelay.store"):
        with pytest.raises(StoreInvariantViolation):
            sql_store.load_snapshot("device-1", ["key-a"], TODAY)

    [event] = _events(caplog, "keyrelay.store")
    assert event["event"] == "store_invariant_violation"
    assert event["operation"] == "load_snapshot"
    assert event["keys"] == ["device-1", "key-a"]
    assert event["day"] == "2026-03-14"
