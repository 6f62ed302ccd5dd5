"""Caller and operator authentication (pre-shared secrets).

Design:
- Callers prove their identity with base64(HMAC-SHA256(psk, identity_id)).
- Operators call administrative endpoints with a separate admin secret.
- Every comparison is constant-time. Verification never raises on bad input;
  it answers False.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from typing import Optional

from fastapi import Request

from app.core.errors import AuthenticationFailure


ADMIN_SECRET_HEADERS = ("x-admin-secret", "x-cron-secret")


def _hmac_sha256(key: bytes, msg: bytes) -> bytes:
    return hmac.new(key, msg, hashlib.sha256).digest()


class IdentityAuthenticator:
    """Verifies identity proofs issued with the shared secret."""

    def __init__(self, shared_secret: str) -> None:
        if not shared_secret:
            raise ValueError("shared secret must not be empty")
        self._key = shared_secret.encode("utf-8")

    def compute_proof(self, identity_id: str) -> str:
        return base64.b64encode(_hmac_sha256(self._key, identity_id.encode("utf-8"))).decode("ascii")

    def verify(self, identity_id: Optional[str], proof: Optional[str]) -> bool:
        if not identity_id or not proof or not isinstance(identity_id, str) or not isinstance(proof, str):
            return False
        try:
            supplied = base64.b64decode(proof.strip(), validate=True)
        except (binascii.Error, ValueError):
            return False
        expected = _hmac_sha256(self._key, identity_id.encode("utf-8"))
        return hmac.compare_digest(expected, supplied)


def verify_admin_secret(configured: str, supplied: Optional[str]) -> bool:
    if not configured or not supplied:
        return False
    return hmac.compare_digest(configured.encode("utf-8"), supplied.encode("utf-8"))


def _admin_header(request: Request) -> Optional[str]:
    for name in ADMIN_SECRET_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return None


def require_admin(request: Request) -> None:
    """FastAPI dependency guarding operator endpoints."""
    settings = request.app.state.settings
    if not verify_admin_secret(settings.admin_secret, _admin_header(request)):
        raise AuthenticationFailure("Unauthorized")


