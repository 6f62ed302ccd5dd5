"""API dependencies.

Components are built once per application in `create_app` and attached to
`app.state`; request handlers only receive them. No request state outlives the
request.
"""

from __future__ import annotations

from fastapi import Request

from app.core.clock import Clock
from app.core.config import Settings
from app.repositories.ledger import LedgerStore
from app.security.rate_limit import client_key
from app.services.daily_reset import DailyResetSweep
from app.services.identities import IdentityRegistry
from app.services.quota_enforcer import QuotaEnforcer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store


def get_enforcer(request: Request) -> QuotaEnforcer:
    return request.app.state.enforcer


def get_reset_sweep(request: Request) -> DailyResetSweep:
    return DailyResetSweep(request.app.state.store, request.app.state.clock)


def get_identity_registry(request: Request) -> IdentityRegistry:
    return IdentityRegistry(request.app.state.store, request.app.state.clock)


def enforce_rate_limit(request: Request) -> None:
    """Per-client request budget (transport abuse protection)."""
    settings = request.app.state.settings
    request.app.state.limiter.check(client_key(request, trust_proxy_headers=settings.trust_proxy_headers))
