"""In-process smoke run: issue credentials until the identity quota trips.

Uses an in-memory ledger, so it needs no database:
  python scripts/api_smoke.py
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from fastapi.testclient import TestClient


ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.clock import UtcClock  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.main import create_app  # noqa: E402
from app.repositories.memory_ledger import InMemoryLedgerStore  # noqa: E402
from app.security.auth import IdentityAuthenticator  # noqa: E402
from app.security.cipher import CredentialCipher  # noqa: E402


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


def main() -> int:
    settings = Settings.from_env(
        {
            "KR_PSK": "smoke-psk",
            "KR_ADMIN_SECRET": "smoke-admin",
            "KR_API_KEYS": json.dumps(["sk-smoke-a", "sk-smoke-b", "sk-smoke-c"]),
        }
    )
    clock = UtcClock()
    store = InMemoryLedgerStore()
    store.initialize(clock.today())

    logger = logging.getLogger("keyrelay")
    h = ListHandler()
    logger.addHandler(h)

    c = TestClient(create_app(settings, store=store, clock=clock))
    identity = "smoke-device"
    proof = IdentityAuthenticator(settings.psk).compute_proof(identity)
    cipher = CredentialCipher(settings.psk)
    for _ in range(settings.identity_daily_limit + 1):
        r = c.post("/v1/credentials", json={"identity_id": identity, "proof": proof})
        body = r.json()
        if r.status_code == 200:
            print("200", cipher.open(body["encrypted_credential"]), body["remaining_identity_daily_quota"])
        else:
            print(r.status_code, body)

    logger.removeHandler(h)
    print("keyrelay logs:", h.messages[-3:])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
