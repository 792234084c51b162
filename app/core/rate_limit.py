"""Quota enforcement dependency for FastAPI routes.

Wires the admission controller's check-and-consume step into the HTTP layer.
Each admitted request increments the caller's usage exactly once; rejected
requests are never counted.

Strategy:
- Keys with an enabled quota are rejected with 429 once usage reaches it.
- Keys without a quota are admitted and still counted.
- Anonymous callers (public routes) are not metered.
- Store failures and timeouts fail closed with 503.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Annotated, Awaitable, Callable

from fastapi import Depends

from app.core.auth import authenticate, get_admission_controller
from app.core.errors import BackendUnavailableAppError, QuotaExceededAppError
from app.services.admission_service import (
    AdmissionController,
    AdmissionReason,
    AuthMode,
    LimitResult,
    ValidationResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    """Outcome of the full admission pipeline for one request.

    ``limit`` is None for anonymous callers, who are not metered.
    """

    validation: ValidationResult
    limit: LimitResult | None = None

    @property
    def key_id(self) -> str | None:
        return self.validation.key_id


def raise_for_limit(result: LimitResult, key_id: str) -> None:
    """Translate a rejected quota check into an application error.

    Raises:
        QuotaExceededAppError: Quota exhausted (429).
        BackendUnavailableAppError: Key store unavailable or timed out (503).
    """
    if result.allowed:
        return

    if result.reason is AdmissionReason.QUOTA_EXCEEDED:
        details = {"current_usage": result.current_usage}
        if result.limit is not None:
            details["limit"] = result.limit
        raise QuotaExceededAppError(
            code=AdmissionReason.QUOTA_EXCEEDED.value,
            message="Rate limit exceeded. API key has reached its monthly usage limit.",
            details=details,  # type: ignore[arg-type]
        )

    raise BackendUnavailableAppError(
        code=AdmissionReason.BACKEND_UNAVAILABLE.value,
        message="Usage accounting is temporarily unavailable",
        details={"key_id": key_id, "hint": result.detail or "unknown"},
    )


@functools.lru_cache(maxsize=None)
def enforce_quota(mode: AuthMode) -> Callable[..., Awaitable[Admission]]:
    """Build the admission dependency (validate, then check-and-consume).

    Usage:
        @router.post("/metered")
        async def metered(admission: Admission = Depends(enforce_quota(AuthMode.STRICT))):
            ...

    Args:
        mode: Credential mode passed to ``authenticate``.

    Returns:
        Async dependency returning the Admission for the request.
    """

    async def _enforce_quota(
        validation: Annotated[ValidationResult, Depends(authenticate(mode))],
        controller: Annotated[AdmissionController, Depends(get_admission_controller)],
    ) -> Admission:
        if validation.key_id is None:
            return Admission(validation=validation)

        result = await controller.acheck_and_consume(validation.key_id)
        raise_for_limit(result, validation.key_id)

        logger.info(
            "rate_limit.allowed",
            extra={
                "key_id": validation.key_id,
                "usage": result.current_usage,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return Admission(validation=validation, limit=result)

    return _enforce_quota
