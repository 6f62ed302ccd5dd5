"""Server-side identity minting for deployments that do not trust client ids."""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import date

from app.core.clock import Clock
from app.core.errors import StoreInvariantViolation
from app.repositories.ledger import LedgerStore


logger = logging.getLogger("keyrelay.identities")

TOKEN_BYTES = 24


@dataclass(frozen=True, slots=True)
class RegisteredIdentity:
    identity_id: str
    day: date


class IdentityRegistry:
    def __init__(self, store: LedgerStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def register(self) -> RegisteredIdentity:
        today = self._clock.today()
        identity_id = secrets.token_urlsafe(TOKEN_BYTES)
        if not self._store.register_identity(identity_id, today):
            # 192 random bits colliding means the generator or the store is broken.
            raise StoreInvariantViolation("freshly minted identity already exists")
        logger.info(json.dumps({"event": "identity_registered", "identity_id": identity_id, "day": today.isoformat()}))
        return RegisteredIdentity(identity_id=identity_id, day=today)
