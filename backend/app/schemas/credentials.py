"""Schemas for credential issuance."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CredentialRequest(BaseModel):
    """Caller identity and its proof.

    Missing values are not a validation error: they fail authentication like
    any other bad proof. Legacy clients send `deviceId` / `hmac`.
    """

    identity_id: str = Field(
        "",
        max_length=256,
        validation_alias=AliasChoices("identity_id", "deviceId"),
    )
    proof: str = Field(
        "",
        max_length=512,
        validation_alias=AliasChoices("proof", "hmac"),
    )

    model_config = ConfigDict(extra="ignore")


class CredentialResponse(BaseModel):
    encrypted_credential: str = Field(..., description="'<iv hex>:<ciphertext hex>', AES-256-CBC")
    remaining_identity_daily_quota: int
    remaining_secret_daily_quota: int
    remaining_identity_lifetime_quota: int


class ErrorResponse(BaseModel):
    error: str
    code: str
