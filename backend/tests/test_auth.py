from __future__ import annotations

import base64

import pytest

from app.security.auth import IdentityAuthenticator, verify_admin_secret
from conftest import PSK, make_proof


@pytest.fixture()
def auth() -> IdentityAuthenticator:
    return IdentityAuthenticator(PSK)


def test_valid_proof_is_accepted(auth):
    assert auth.verify("device-1", make_proof("device-1"))
    assert auth.compute_proof("device-1") == make_proof("device-1")


def test_proof_from_wrong_secret_is_rejected(auth):
    assert not auth.verify("device-1", make_proof("device-1", secret="other-psk"))


def test_truncated_proof_is_rejected(auth):
    raw = base64.b64decode(make_proof("device-1"))
    truncated = base64.b64encode(raw[:-4]).decode("ascii")
    assert not auth.verify("device-1", truncated)
    assert not auth.verify("device-1", make_proof("device-1")[:-4])


def test_proof_for_other_identity_is_rejected(auth):
    assert not auth.verify("device-2", make_proof("device-1"))


@pytest.mark.parametrize(
    "identity_id, proof",
    [
        ("", "anything"),
        ("device-1", ""),
        (None, None),
        ("device-1", "not base64 !!"),
        (123, "abc="),
        ("device-1", 42),
    ],
)
def test_malformed_input_returns_false_without_raising(auth, identity_id, proof):
    assert auth.verify(identity_id, proof) is False


def test_admin_secret_comparison():
    assert verify_admin_secret("admin", "admin")
    assert not verify_admin_secret("admin", "admin ")
    assert not verify_admin_secret("admin", None)
    assert not verify_admin_secret("", "")
