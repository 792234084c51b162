"""API key validation and management endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.adapters.key_store.base import AbstractKeyRepository, KeyKind
from app.adapters.key_store.factory import get_key_store
from app.core.auth import get_admission_controller, verify_admin_key
from app.core.errors import ValidationAppError
from app.schemas.api_key import (
    ApiKeyCreate,
    ApiKeyEnvelope,
    ApiKeyListResponse,
    ApiKeyResponse,
    ApiKeyUpdate,
    KeyKindLiteral,
    KeyValidationRequest,
    KeyValidationResponse,
)
from app.services.admission_service import (
    AdmissionController,
    AdmissionReason,
    AuthMode,
)
from app.services.key_service import KeyService

router = APIRouter(prefix="/keys", tags=["Keys"])


def get_key_service(
    repository: Annotated[AbstractKeyRepository, Depends(get_key_store)],
) -> KeyService:
    return KeyService(repository)


KeyServiceDep = Annotated[KeyService, Depends(get_key_service)]


@router.post("/validate", response_model=KeyValidationResponse)
async def validate_key(
    body: KeyValidationRequest,
    controller: Annotated[AdmissionController, Depends(get_admission_controller)],
) -> KeyValidationResponse | JSONResponse:
    """Check whether a key exists without consuming quota.

    Unknown keys are reported with 200 and ``valid: false``; an unreachable
    key store yields 503.
    """
    if not body.key or not body.key.strip():
        raise ValidationAppError(code="api_key_required", message="API key is required")

    result = await controller.avalidate(body.key, mode=AuthMode.STRICT)
    payload = KeyValidationResponse(
        valid=result.valid,
        key_id=result.key_id,
        error=result.error.value if result.error else None,
    )
    if result.error is AdmissionReason.BACKEND_UNAVAILABLE:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=payload.model_dump(),
        )
    return payload


@router.get(
    "",
    response_model=ApiKeyListResponse,
    dependencies=[Depends(verify_admin_key)],
)
def list_keys(
    service: KeyServiceDep,
    kind: Annotated[
        KeyKindLiteral | None,
        Query(alias="type", description="Filter by key kind"),
    ] = None,
) -> ApiKeyListResponse:
    """List keys, newest first."""
    records = service.list_keys(KeyKind(kind) if kind else None)
    return ApiKeyListResponse(data=[ApiKeyResponse.from_record(r) for r in records])


@router.post(
    "",
    response_model=ApiKeyEnvelope,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_admin_key)],
)
def create_key(body: ApiKeyCreate, service: KeyServiceDep) -> ApiKeyEnvelope:
    """Create a key; a secret is generated when none is supplied."""
    return ApiKeyEnvelope(data=ApiKeyResponse.from_record(service.create_key(body)))


@router.get(
    "/{key_id}",
    response_model=ApiKeyEnvelope,
    dependencies=[Depends(verify_admin_key)],
)
def get_key(key_id: str, service: KeyServiceDep) -> ApiKeyEnvelope:
    return ApiKeyEnvelope(data=ApiKeyResponse.from_record(service.get_key(key_id)))


@router.put(
    "/{key_id}",
    response_model=ApiKeyEnvelope,
    dependencies=[Depends(verify_admin_key)],
)
def update_key(key_id: str, body: ApiKeyUpdate, service: KeyServiceDep) -> ApiKeyEnvelope:
    """Update name, kind, secret or quota. Usage is never modified."""
    return ApiKeyEnvelope(data=ApiKeyResponse.from_record(service.update_key(key_id, body)))


@router.delete(
    "/{key_id}",
    dependencies=[Depends(verify_admin_key)],
)
def delete_key(key_id: str, service: KeyServiceDep) -> dict:
    service.delete_key(key_id)
    return {"message": "API key deleted successfully"}
