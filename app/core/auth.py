"""API key authentication for FastAPI routes.

Two concerns live here:
- Caller credentials: ``Authorization: Bearer <secret>`` (or the raw secret)
  validated by the admission controller against the key store. The mode
  (public or strict) is chosen per route.
- Admin credentials for key management: ``X-Admin-Key`` checked against a
  comma-separated list from configuration.

Design principles:
- Dependency Injection: used via FastAPI Depends() for loose coupling
- One code path for both credential modes, parameterized by AuthMode
- Secrets are only ever logged as short hashes
"""

from __future__ import annotations

import functools
import hashlib
import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status

from app.adapters.key_store.base import AbstractKeyRepository
from app.adapters.key_store.factory import get_key_store
from app.core.config import settings
from app.core.errors import AuthenticationAppError, BackendUnavailableAppError
from app.services.admission_service import (
    AdmissionController,
    AdmissionReason,
    AuthMode,
    ValidationResult,
)

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def extract_credential(authorization: str | None) -> str | None:
    """Extract the secret from an Authorization header value.

    Supports ``Bearer <secret>`` and the raw secret.

    Examples:
        >>> extract_credential("Bearer abc ")
        'abc'
        >>> extract_credential("abc")
        'abc'
        >>> extract_credential(None) is None
        True
    """
    if authorization is None:
        return None
    if authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):].strip()
    return authorization.strip()


def get_admission_controller(
    store: Annotated[AbstractKeyRepository, Depends(get_key_store)],
) -> AdmissionController:
    """FastAPI dependency building a controller over the configured store."""
    return AdmissionController(
        store,
        timeout_seconds=settings.app.admission_timeout_seconds,
    )


def raise_for_validation(result: ValidationResult) -> None:
    """Translate a rejected validation into an application error.

    Raises:
        AuthenticationAppError: Missing or unknown credential (401).
        BackendUnavailableAppError: Key store unavailable (503).
    """
    if result.valid:
        return

    if result.error is AdmissionReason.CREDENTIAL_REQUIRED:
        raise AuthenticationAppError(
            code=AdmissionReason.CREDENTIAL_REQUIRED.value,
            message=(
                "API key is required. Provide it in Authorization header as: "
                "Authorization: Bearer <your-api-key>"
            ),
        )
    if result.error is AdmissionReason.INVALID_CREDENTIAL:
        raise AuthenticationAppError(
            code=AdmissionReason.INVALID_CREDENTIAL.value,
            message="API key is invalid or not found",
        )
    raise BackendUnavailableAppError(
        code=AdmissionReason.BACKEND_UNAVAILABLE.value,
        message="API key validation is temporarily unavailable",
        details={"hint": result.detail or "unknown"},
    )


@functools.lru_cache(maxsize=None)
def authenticate(mode: AuthMode) -> Callable[..., Awaitable[ValidationResult]]:
    """Build the credential dependency for a route.

    The factory is cached so every route using the same mode shares one
    dependency callable, which lets FastAPI resolve it once per request.

    Usage:
        @router.get("/protected")
        async def protected(auth: ValidationResult = Depends(authenticate(AuthMode.STRICT))):
            ...

    Args:
        mode: PUBLIC admits anonymous callers; STRICT requires a credential.

    Returns:
        Async dependency returning the successful ValidationResult.
    """

    async def _authenticate(
        controller: Annotated[AdmissionController, Depends(get_admission_controller)],
        authorization: Annotated[str | None, Header()] = None,
    ) -> ValidationResult:
        result = await controller.avalidate(extract_credential(authorization), mode=mode)
        raise_for_validation(result)
        logger.info(
            "auth.success",
            extra={
                "mode": mode.value,
                "anonymous": result.key_id is None,
                "key_id": result.key_id,
            },
        )
        return result

    return _authenticate


async def verify_admin_key(
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
) -> None:
    """FastAPI dependency guarding key management endpoints.

    Validates the X-Admin-Key header against APP_ADMIN_API_KEYS. Can be
    disabled by setting APP_ADMIN_AUTH_REQUIRED=false.

    Raises:
        HTTPException: 403 Forbidden if the admin key is missing or invalid.
    """
    if not settings.app.admin_auth_required:
        logger.debug("admin_auth.skipped", extra={"reason": "admin_auth_required_false"})
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)
    if not valid_keys:
        logger.error("admin_auth.failed", extra={"reason": "admin_keys_not_configured"})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin authentication is enabled but no admin keys are configured",
        )

    if not x_admin_key:
        logger.warning("admin_auth.failed", extra={"reason": "missing_key"})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing admin key. Provide X-Admin-Key header.",
        )

    if x_admin_key not in valid_keys:
        logger.warning(
            "admin_auth.failed",
            extra={
                "reason": "invalid_key",
                "admin_key_hash": hashlib.sha256(x_admin_key.encode()).hexdigest()[:16],
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
