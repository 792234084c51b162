"""API key management service.

Creates, lists, updates and deletes keys on behalf of the management API.
Usage counters are never written here: they start at zero on creation and
are only advanced by the admission controller.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any

from app.adapters.key_store.base import (
    AbstractKeyRepository,
    ApiKeyRecord,
    DuplicateCredentialError,
    KeyKind,
    KeyNotFoundError,
    KeyStoreError,
)
from app.core.config import settings
from app.core.errors import (
    BackendUnavailableAppError,
    ConflictAppError,
    NotFoundAppError,
    ValidationAppError,
)
from app.schemas.api_key import ApiKeyCreate, ApiKeyUpdate

logger = logging.getLogger(__name__)


def generate_secret(kind: KeyKind) -> str:
    """Generate a random secret prefixed by key kind.

    Args:
        kind: Key kind selecting the configured prefix.

    Returns:
        A new secret such as ``rs-dev-3q2...``.
    """
    prefix = settings.app.key_prefix_prod if kind is KeyKind.PROD else settings.app.key_prefix_dev
    return f"{prefix}-{secrets.token_urlsafe(24)}"


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationAppError(code="key_name_required", message="Name is required")
    return cleaned


def _require_limit(enabled: bool, limit: int | None) -> None:
    if enabled and limit is None:
        raise ValidationAppError(
            code="monthly_limit_required",
            message="monthly_limit is required when limit_monthly_usage is true",
        )


def _not_found(key_id: str) -> NotFoundAppError:
    return NotFoundAppError(
        code="api_key_not_found",
        message="API key not found",
        details={"key_id": key_id},
    )


def _unavailable(exc: KeyStoreError) -> BackendUnavailableAppError:
    logger.error("key_service.store_unavailable", extra={"detail": exc.detail})
    return BackendUnavailableAppError(
        code="key_store_unavailable",
        message="API key store is unavailable",
        details={"hint": exc.detail},
    )


def _duplicate() -> ConflictAppError:
    return ConflictAppError(
        code="api_key_duplicate",
        message="An API key with this secret already exists",
    )


class KeyService:
    """Key management on top of a key repository."""

    def __init__(self, repository: AbstractKeyRepository) -> None:
        self.repository = repository

    def create_key(self, payload: ApiKeyCreate) -> ApiKeyRecord:
        name = _require_name(payload.name)
        kind = KeyKind(payload.type)
        _require_limit(payload.limit_monthly_usage, payload.monthly_limit)
        secret = (payload.key or "").strip() or generate_secret(kind)

        record = ApiKeyRecord(
            id=uuid.uuid4().hex,
            name=name,
            secret=secret,
            kind=kind,
            usage_count=0,
            quota_enabled=payload.limit_monthly_usage,
            quota_limit=payload.monthly_limit if payload.limit_monthly_usage else None,
        )

        try:
            created = self.repository.create(record)
        except DuplicateCredentialError as exc:
            raise _duplicate() from exc
        except KeyStoreError as exc:
            raise _unavailable(exc) from exc

        logger.info(
            "key_service.created",
            extra={
                "key_id": created.id,
                "kind": created.kind.value,
                "quota_enabled": created.quota_enabled,
                "quota_limit": created.quota_limit,
            },
        )
        return created

    def list_keys(self, kind: KeyKind | None = None) -> list[ApiKeyRecord]:
        try:
            return self.repository.list_keys(kind=kind)
        except KeyStoreError as exc:
            raise _unavailable(exc) from exc

    def get_key(self, key_id: str) -> ApiKeyRecord:
        try:
            return self.repository.find_by_id(key_id)
        except KeyNotFoundError as exc:
            raise _not_found(key_id) from exc
        except KeyStoreError as exc:
            raise _unavailable(exc) from exc

    def update_key(self, key_id: str, payload: ApiKeyUpdate) -> ApiKeyRecord:
        changes: dict[str, Any] = {"name": _require_name(payload.name)}
        if payload.type is not None:
            changes["kind"] = KeyKind(payload.type)
        if payload.key and payload.key.strip():
            changes["secret"] = payload.key.strip()
        if payload.limit_monthly_usage is not None:
            _require_limit(payload.limit_monthly_usage, payload.monthly_limit)
            changes["quota_enabled"] = payload.limit_monthly_usage
            changes["quota_limit"] = payload.monthly_limit if payload.limit_monthly_usage else None

        try:
            updated = self.repository.update(key_id, **changes)
        except KeyNotFoundError as exc:
            raise _not_found(key_id) from exc
        except DuplicateCredentialError as exc:
            raise _duplicate() from exc
        except KeyStoreError as exc:
            raise _unavailable(exc) from exc

        logger.info(
            "key_service.updated",
            extra={"key_id": key_id, "fields": sorted(changes)},
        )
        return updated

    def delete_key(self, key_id: str) -> None:
        try:
            self.repository.delete(key_id)
        except KeyNotFoundError as exc:
            raise _not_found(key_id) from exc
        except KeyStoreError as exc:
            raise _unavailable(exc) from exc

        logger.info("key_service.deleted", extra={"key_id": key_id})
