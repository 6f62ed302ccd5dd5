"""Credential issuance endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import enforce_rate_limit, get_enforcer
from app.schemas.credentials import CredentialRequest, CredentialResponse, ErrorResponse
from app.services.quota_enforcer import QuotaEnforcer


router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

ERROR_RESPONSES = {
    401: {"model": ErrorResponse, "description": "Invalid identity proof"},
    403: {"model": ErrorResponse, "description": "Identity daily or lifetime quota reached"},
    429: {"model": ErrorResponse, "description": "All keys at their daily ceiling, or client rate limited"},
    503: {"model": ErrorResponse, "description": "Ledger unavailable; nothing was consumed"},
}


# Sync handler: ledger calls block, FastAPI runs this on its worker thread pool.
def issue_credential(
    body: CredentialRequest,
    enforcer: QuotaEnforcer = Depends(get_enforcer),
) -> CredentialResponse:
    issued = enforcer.issue(body.identity_id, body.proof)
    return CredentialResponse(
        encrypted_credential=issued.encrypted_credential,
        remaining_identity_daily_quota=issued.remaining_identity_daily_quota,
        remaining_secret_daily_quota=issued.remaining_secret_daily_quota,
        remaining_identity_lifetime_quota=issued.remaining_identity_lifetime_quota,
    )


router.add_api_route(
    "/credentials",
    issue_credential,
    methods=["POST"],
    response_model=CredentialResponse,
    responses=ERROR_RESPONSES,
    summary="Issue an encrypted upstream credential",
)
