"""Error taxonomy for credential issuance.

Intent:
- Authentication and quota failures are expected outcomes, reported to callers
  with short, non-leaky messages.
- Store failures are operational signals: logged with context by the store,
  reported to callers generically.
- Every error names the request state it terminates in.
"""

from __future__ import annotations

from enum import Enum


class RequestState(str, Enum):
    """Per-request lifecycle of a credential issuance."""

    AUTHENTICATED = "AUTHENTICATED"
    IDENTITY_CHECKED = "IDENTITY_CHECKED"
    KEY_SELECTED = "KEY_SELECTED"
    COMMITTED = "COMMITTED"
    RESPONDED = "RESPONDED"

    REJECTED_AUTH = "REJECTED_AUTH"
    REJECTED_IDENTITY_QUOTA = "REJECTED_IDENTITY_QUOTA"
    REJECTED_POOL_EXHAUSTED = "REJECTED_POOL_EXHAUSTED"
    FAILED_STORE = "FAILED_STORE"


class KeyRelayError(RuntimeError):
    """Base error. Subclasses define the public code, status and terminal state."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    terminal_state: RequestState = RequestState.FAILED_STORE
    public_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class AuthenticationFailure(KeyRelayError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401
    terminal_state = RequestState.REJECTED_AUTH
    public_message = "Invalid identity proof."


class IdentityQuotaExceeded(KeyRelayError):
    code = "IDENTITY_QUOTA_EXCEEDED"
    status_code = 403
    terminal_state = RequestState.REJECTED_IDENTITY_QUOTA

    def __init__(self, reason: str) -> None:
        self.reason = reason  # "daily" | "lifetime"
        if reason == "lifetime":
            message = "Lifetime usage limit reached."
        else:
            message = "Daily usage limit reached. Try again tomorrow."
        super().__init__(message)


class PoolExhausted(KeyRelayError):
    code = "POOL_EXHAUSTED"
    status_code = 429
    terminal_state = RequestState.REJECTED_POOL_EXHAUSTED
    public_message = "All API keys have reached their daily limit. Please try again later."


class StoreError(KeyRelayError):
    """Any failure of the durable ledger."""


class StoreUnavailable(StoreError):
    """Transient I/O failure or timeout; nothing was committed."""

    code = "STORE_UNAVAILABLE"
    status_code = 503
    public_message = "Service temporarily unavailable."


class StoreInvariantViolation(StoreError):
    """Missing singleton or corrupt record. Must alert, never default silently."""

    code = "STORE_INVARIANT_VIOLATION"
    status_code = 500
    public_message = "Internal Server Error"


class SecretCeilingConflict(StoreError):
    """The selected secret reached its ceiling between snapshot and commit.

    Raised by stores after rolling back; the enforcer retries selection.
    """

    def __init__(self, secret_id: str) -> None:
        self.secret_id = secret_id
        super().__init__(f"secret {secret_id} reached its ceiling before commit")
