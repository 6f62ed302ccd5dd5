"""Quota ledger contract.

The ledger is the only shared mutable state of the service. Implementations
must provide:
- one consistent snapshot read (identity usage, per-secret hits, cursor);
- an atomic dispense commit whose identity and secret increments are guarded
  conditional updates, so a stale snapshot can never push a counter past its
  ceiling;
- lazy day-boundary semantics on every read and write, and an idempotent
  eager sweep.

The cursor update inside a commit is last-writer-wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Protocol, Sequence


def current_count(count: int, day: date, today: date) -> int:
    """Counter value as seen on `today`: a past day's value reads as zero."""
    return count if day >= today else 0


def current_cursor(last_index: int, day: date, today: date) -> int:
    return last_index if day >= today else -1


@dataclass(frozen=True, slots=True)
class Ceilings:
    secret_daily: int
    identity_daily: int
    identity_lifetime: int


@dataclass(frozen=True, slots=True)
class IdentityUsageDTO:
    identity_id: str
    daily_uses: int = 0
    lifetime_uses: int = 0


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    day: date
    identity: IdentityUsageDTO
    hits: dict[str, int]
    last_index: int

    def hits_for(self, secret_id: str) -> int:
        return self.hits.get(secret_id, 0)


@dataclass(frozen=True, slots=True)
class CommitResult:
    secret_id: str
    hits: int
    daily_uses: int
    lifetime_uses: int
    cursor_index: int


@dataclass(frozen=True, slots=True)
class ResetSummary:
    day: date
    keys_reset: int
    identities_reset: int
    cursor_reset: bool


@dataclass(frozen=True, slots=True)
class UsageReport:
    day: date
    hits: dict[str, int] = field(default_factory=dict)
    last_index: int = -1
    identities_active: int = 0


class LedgerStore(Protocol):
    def initialize(self, today: date) -> None:
        """Create the rotation cursor singleton if it does not exist yet."""

    def load_snapshot(self, identity_id: str, secret_ids: Sequence[str], today: date) -> LedgerSnapshot:
        ...

    def commit_dispense(
        self,
        *,
        identity_id: str,
        secret_id: str,
        index: int,
        today: date,
        ceilings: Ceilings,
    ) -> CommitResult:
        """Atomically count one dispense of `secret_id` to `identity_id`.

        Raises IdentityQuotaExceeded or SecretCeilingConflict (after rolling
        back) when a guard fails, StoreUnavailable on I/O failure and
        StoreInvariantViolation when the cursor singleton is missing.
        """

    def reset_daily(self, today: date) -> ResetSummary:
        ...

    def register_identity(self, identity_id: str, today: date) -> bool:
        """Create a zeroed usage record. Returns False if it already existed."""

    def get_identity_usage(self, identity_id: str, today: date) -> IdentityUsageDTO:
        ...

    def usage_report(self, secret_ids: Sequence[str], today: date) -> UsageReport:
        ...
