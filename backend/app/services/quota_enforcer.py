"""Credential issuance: authenticate, check quota, select, commit, seal.

Execution flow (one request):
    AUTHENTICATED      proof verified against the shared secret
    IDENTITY_CHECKED   identity under its daily and lifetime ceilings
    KEY_SELECTED       round-robin pick from one ledger snapshot
    COMMITTED          guarded increments + cursor advance, one transaction
    RESPONDED          credential sealed, remaining quota reported

Terminal failures are raised as KeyRelayError subclasses naming their state.
Nothing is cached between requests: every attempt re-reads the ledger.

If the selected secret fills up between snapshot and commit, the commit rolls
back and selection is retried on a fresh snapshot. Each conflict means one
more secret was seen at its ceiling today, so after len(pool) + 1 attempts the
pool is reported exhausted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from app.core.clock import Clock
from app.core.config import Settings
from app.core.errors import (
    AuthenticationFailure,
    IdentityQuotaExceeded,
    KeyRelayError,
    PoolExhausted,
    RequestState,
    SecretCeilingConflict,
)
from app.core.pool import SecretPool
from app.repositories.ledger import Ceilings, CommitResult, LedgerSnapshot, LedgerStore
from app.security.auth import IdentityAuthenticator
from app.security.cipher import CredentialCipher
from app.services.key_selector import Selection, select_secret


logger = logging.getLogger("keyrelay.enforcer")


def _log(event: dict[str, Any], *, level: int = logging.INFO) -> None:
    logger.log(level, json.dumps(event, ensure_ascii=False, default=str))


@dataclass(frozen=True, slots=True)
class IssuedCredential:
    encrypted_credential: str
    remaining_identity_daily_quota: int
    remaining_secret_daily_quota: int
    remaining_identity_lifetime_quota: int
    state: RequestState = RequestState.RESPONDED


class QuotaEnforcer:
    def __init__(
        self,
        *,
        pool: SecretPool,
        store: LedgerStore,
        clock: Clock,
        authenticator: IdentityAuthenticator,
        cipher: CredentialCipher,
        ceilings: Ceilings,
    ) -> None:
        self._pool = pool
        self._store = store
        self._clock = clock
        self._authenticator = authenticator
        self._cipher = cipher
        self._ceilings = ceilings

    @classmethod
    def from_settings(cls, settings: Settings, *, store: LedgerStore, clock: Clock) -> "QuotaEnforcer":
        return cls(
            pool=settings.pool,
            store=store,
            clock=clock,
            authenticator=IdentityAuthenticator(settings.psk),
            cipher=CredentialCipher(settings.psk),
            ceilings=Ceilings(
                secret_daily=settings.secret_daily_limit,
                identity_daily=settings.identity_daily_limit,
                identity_lifetime=settings.identity_lifetime_limit,
            ),
        )

    @property
    def ceilings(self) -> Ceilings:
        return self._ceilings

    def _check_identity(self, snapshot: LedgerSnapshot) -> None:
        usage = snapshot.identity
        if usage.lifetime_uses >= self._ceilings.identity_lifetime:
            raise IdentityQuotaExceeded("lifetime")
        if usage.daily_uses >= self._ceilings.identity_daily:
            raise IdentityQuotaExceeded("daily")

    def _select(self, snapshot: LedgerSnapshot) -> Selection:
        selection = select_secret(self._pool, snapshot.hits, snapshot.last_index, self._ceilings.secret_daily)
        if selection is None:
            raise PoolExhausted()
        return selection

    def _commit(self, identity_id: str) -> tuple[CommitResult, date]:
        attempts = len(self._pool) + 1
        for attempt in range(1, attempts + 1):
            today = self._clock.today()
            snapshot = self._store.load_snapshot(identity_id, self._pool.secret_ids, today)
            self._check_identity(snapshot)
            selection = self._select(snapshot)
            try:
                result = self._store.commit_dispense(
                    identity_id=identity_id,
                    secret_id=selection.secret.secret_id,
                    index=selection.index,
                    today=today,
                    ceilings=self._ceilings,
                )
                return result, today
            except SecretCeilingConflict as e:
                _log(
                    {
                        "event": "commit_conflict",
                        "identity_id": identity_id,
                        "secret_id": e.secret_id,
                        "attempt": attempt,
                        "day": today.isoformat(),
                    }
                )
        raise PoolExhausted()

    def issue(self, identity_id: str, proof: str) -> IssuedCredential:
        try:
            if not self._authenticator.verify(identity_id, proof):
                raise AuthenticationFailure()
            result, day = self._commit(identity_id)
        except KeyRelayError as e:
            _log(
                {
                    "event": "credential_rejected",
                    "identity_id": identity_id if isinstance(identity_id, str) else None,
                    "state": e.terminal_state.value,
                    "code": e.code,
                },
                level=logging.WARNING,
            )
            raise

        secret = self._pool[result.cursor_index]
        issued = IssuedCredential(
            encrypted_credential=self._cipher.seal(secret.value),
            remaining_identity_daily_quota=max(0, self._ceilings.identity_daily - result.daily_uses),
            remaining_secret_daily_quota=max(0, self._ceilings.secret_daily - result.hits),
            remaining_identity_lifetime_quota=max(0, self._ceilings.identity_lifetime - result.lifetime_uses),
        )
        _log(
            {
                "event": "credential_issued",
                "identity_id": identity_id,
                "secret_id": result.secret_id,
                "index": result.cursor_index,
                "hits": result.hits,
                "daily_uses": result.daily_uses,
                "lifetime_uses": result.lifetime_uses,
                "day": day.isoformat(),
                "state": issued.state.value,
            }
        )
        return issued
