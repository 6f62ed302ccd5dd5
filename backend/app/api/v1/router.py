"""API v1 routers.

`legacy_router` keeps the paths older clients and cron schedulers call
(`/api/get-api-key`, `/api/reset-metrics`).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit
from app.api.v1.admin import reset_metrics, router as admin_router
from app.api.v1.credentials import ERROR_RESPONSES, issue_credential, router as credentials_router
from app.schemas.admin import ResetResponse
from app.schemas.credentials import CredentialResponse
from app.security.auth import require_admin


router = APIRouter()
router.include_router(credentials_router, tags=["credentials"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])


legacy_router = APIRouter(include_in_schema=False)
legacy_router.add_api_route(
    "/get-api-key",
    issue_credential,
    methods=["POST"],
    response_model=CredentialResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_rate_limit)],
)
legacy_router.add_api_route(
    "/reset-metrics",
    reset_metrics,
    methods=["GET", "POST"],
    response_model=ResetResponse,
    dependencies=[Depends(require_admin)],
)
