"""Pydantic schemas for API key management and validation."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.adapters.key_store.base import ApiKeyRecord


KeyKindLiteral = Literal["dev", "prod"]


class ApiKeyCreate(BaseModel):
    """Payload for creating an API key.

    When ``key`` is omitted a secret is generated with the prefix configured
    for the key kind.
    """

    name: str = Field(..., description="Human-readable label for the key.")
    type: KeyKindLiteral = Field("dev", description="Key kind: 'dev' or 'prod'.")
    key: str | None = Field(
        None,
        description="Explicit secret to use instead of a generated one.",
    )
    limit_monthly_usage: bool = Field(
        False,
        description="Whether monthly_limit is enforced for this key.",
    )
    monthly_limit: int | None = Field(
        None,
        ge=0,
        description="Maximum admitted requests; ignored unless limit_monthly_usage is true.",
    )


class ApiKeyUpdate(BaseModel):
    """Payload for updating an API key. Usage can never be changed here."""

    name: str = Field(..., description="Human-readable label for the key.")
    type: KeyKindLiteral | None = Field(None, description="New key kind.")
    key: str | None = Field(None, description="New secret.")
    limit_monthly_usage: bool | None = Field(
        None,
        description="Enable or disable quota enforcement.",
    )
    monthly_limit: int | None = Field(
        None,
        ge=0,
        description="New quota; applied only together with limit_monthly_usage.",
    )


class ApiKeyResponse(BaseModel):
    """API key as returned by management endpoints."""

    id: str
    name: str
    type: KeyKindLiteral
    key: str
    usage: int = Field(..., ge=0)
    limit_monthly_usage: bool
    monthly_limit: int | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ApiKeyRecord) -> "ApiKeyResponse":
        return cls(
            id=record.id,
            name=record.name,
            type=record.kind.value,
            key=record.secret,
            usage=record.usage_count,
            limit_monthly_usage=record.quota_enabled,
            monthly_limit=record.quota_limit,
            created_at=record.created_at,
        )


class ApiKeyListResponse(BaseModel):
    data: list[ApiKeyResponse]


class ApiKeyEnvelope(BaseModel):
    data: ApiKeyResponse


class KeyValidationRequest(BaseModel):
    key: str | None = Field(None, description="API key to validate.")


class KeyValidationResponse(BaseModel):
    """Result of validating a key without consuming quota."""

    valid: bool
    key_id: str | None = None
    error: str | None = None
