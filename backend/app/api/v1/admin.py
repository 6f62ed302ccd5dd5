"""Operator endpoints (admin secret required).

- reset-metrics: daily sweep, safe to call repeatedly or not at all.
- identities: mint a server-side identity.
- usage: current-day ledger view by key fingerprint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import get_clock, get_identity_registry, get_reset_sweep, get_settings, get_store
from app.core.clock import Clock
from app.core.config import Settings
from app.repositories.ledger import LedgerStore
from app.schemas.admin import KeyUsageItem, RegisteredIdentityResponse, ResetResponse, UsageReportResponse
from app.security.auth import require_admin
from app.services.daily_reset import DailyResetSweep
from app.services.identities import IdentityRegistry


router = APIRouter(dependencies=[Depends(require_admin)])


def reset_metrics(sweep: DailyResetSweep = Depends(get_reset_sweep)) -> ResetResponse:
    summary = sweep.run()
    return ResetResponse(
        day=summary.day,
        keys_reset=summary.keys_reset,
        identities_reset=summary.identities_reset,
        cursor_reset=summary.cursor_reset,
    )


router.add_api_route(
    "/reset-metrics",
    reset_metrics,
    methods=["GET", "POST"],
    response_model=ResetResponse,
    summary="Run the daily reset sweep",
)


@router.post("/identities", response_model=RegisteredIdentityResponse, status_code=status.HTTP_201_CREATED)
def register_identity(registry: IdentityRegistry = Depends(get_identity_registry)) -> RegisteredIdentityResponse:
    registered = registry.register()
    return RegisteredIdentityResponse(identity_id=registered.identity_id, day=registered.day)


@router.get("/usage", response_model=UsageReportResponse)
def usage(
    settings: Settings = Depends(get_settings),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> UsageReportResponse:
    report = store.usage_report(settings.pool.secret_ids, clock.today())
    return UsageReportResponse(
        day=report.day,
        last_index=report.last_index,
        identities_active=report.identities_active,
        keys=[
            KeyUsageItem(
                index=entry.index,
                secret_id=entry.secret_id,
                hits=report.hits.get(entry.secret_id, 0),
                remaining=max(0, settings.secret_daily_limit - report.hits.get(entry.secret_id, 0)),
            )
            for entry in settings.pool
        ],
    )
