"""Admission control: credential validation and per-key quota enforcement.

The controller is a stateless orchestrator over the credential store:

    START -> VALIDATING -> {REJECTED, VALIDATED}
          -> CHECKING_QUOTA -> {REJECTED, ADMITTED}

``validate`` and ``check_and_consume`` are independent so callers can compose
them (or skip metering for anonymous callers). Every outcome is returned as a
value; store failures become ``backend_unavailable`` rejections, never
exceptions and never admissions.

Atomicity of the usage counter belongs to the store's ``increment_usage``.
The controller only adds one bounded retry when that call reports a
precondition conflict.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TypeVar

from app.adapters.key_store.base import (
    AbstractCredentialStore,
    ApiKeyRecord,
    KeyNotFoundError,
    KeyStoreError,
    UsageConflictError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthMode(str, Enum):
    """How a missing credential is treated."""

    PUBLIC = "public"
    STRICT = "strict"


class AdmissionReason(str, Enum):
    """Why a request was rejected."""

    CREDENTIAL_REQUIRED = "credential_required"
    INVALID_CREDENTIAL = "invalid_credential"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of credential validation.

    ``key_id`` is None for anonymous callers admitted in public mode.
    """

    valid: bool
    key_id: str | None = None
    error: AdmissionReason | None = None
    detail: str | None = None


@dataclass(frozen=True)
class LimitResult:
    """Outcome of a quota check.

    Attributes:
        allowed: Whether the request was admitted (and counted).
        current_usage: Usage after the increment when allowed, otherwise the
            usage observed when the request was rejected.
        limit: Enforced quota, or None for unlimited keys.
        reason: Rejection reason when not allowed.
        detail: Extra context for ``backend_unavailable``.
    """

    allowed: bool
    current_usage: int = 0
    limit: int | None = None
    reason: AdmissionReason | None = None
    detail: str | None = None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(0, self.limit - self.current_usage)


def hash_credential(secret: str) -> str:
    """Short, non-reversible fingerprint of a secret for logs."""
    return hashlib.sha256(secret.encode()).hexdigest()[:16]


def _unavailable(detail: str, current_usage: int = 0, limit: int | None = None) -> LimitResult:
    return LimitResult(
        allowed=False,
        current_usage=current_usage,
        limit=limit,
        reason=AdmissionReason.BACKEND_UNAVAILABLE,
        detail=detail,
    )


class _WriteGate:
    """One-shot race between a worker about to increment and a caller giving up.

    Whichever side claims the gate first wins, and the other side observes it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: str | None = None

    def _claim(self, state: str) -> bool:
        with self._lock:
            if self._state is None:
                self._state = state
            return self._state == state

    def enter(self) -> bool:
        """Return True when the increment may proceed."""
        return self._claim("writing")

    def abandon(self) -> bool:
        """Return True when no increment has started and none ever will."""
        return self._claim("abandoned")


def _may_write(gate: _WriteGate | None) -> bool:
    return gate is None or gate.enter()


def _abandoned(key_id: str) -> LimitResult:
    logger.debug("admission.quota.abandoned", extra={"key_id": key_id})
    return _unavailable("timeout")


def _store_error_detail(exc: Exception) -> str:
    if isinstance(exc, KeyStoreError):
        return exc.detail
    if isinstance(exc, KeyNotFoundError):
        return "key_not_found"
    return type(exc).__name__


class AdmissionController:
    """Validates credentials and meters usage against per-key quotas.

    Attributes:
        mode: Default credential mode used when ``validate`` is called
            without an explicit mode.
        timeout_seconds: Deadline applied by the async variants.
    """

    def __init__(
        self,
        store: AbstractCredentialStore,
        *,
        mode: AuthMode = AuthMode.STRICT,
        timeout_seconds: float | None = None,
    ) -> None:
        self._store = store
        self.mode = AuthMode(mode)
        self.timeout_seconds = timeout_seconds

    def validate(
        self,
        credential: str | None,
        *,
        mode: AuthMode | None = None,
    ) -> ValidationResult:
        """Resolve a credential to a key id.

        Quota exhaustion is not checked here; see ``check_and_consume``.

        Args:
            credential: Secret supplied by the caller, if any.
            mode: Overrides the controller's default mode for this call.

        Returns:
            ValidationResult describing the outcome.
        """
        effective_mode = AuthMode(mode) if mode is not None else self.mode
        secret = (credential or "").strip()

        if not secret:
            if effective_mode is AuthMode.PUBLIC:
                logger.debug("admission.validate.anonymous", extra={"mode": effective_mode.value})
                return ValidationResult(valid=True)

            logger.info(
                "admission.validate.rejected",
                extra={
                    "mode": effective_mode.value,
                    "reason": AdmissionReason.CREDENTIAL_REQUIRED.value,
                },
            )
            return ValidationResult(valid=False, error=AdmissionReason.CREDENTIAL_REQUIRED)

        try:
            key = self._store.find_by_credential(secret)
        except KeyNotFoundError:
            logger.warning(
                "admission.validate.rejected",
                extra={
                    "mode": effective_mode.value,
                    "reason": AdmissionReason.INVALID_CREDENTIAL.value,
                    "credential_hash": hash_credential(secret),
                },
            )
            return ValidationResult(valid=False, error=AdmissionReason.INVALID_CREDENTIAL)
        except KeyStoreError as exc:
            logger.error(
                "admission.validate.backend_unavailable",
                extra={"mode": effective_mode.value, "detail": exc.detail},
            )
            return ValidationResult(
                valid=False,
                error=AdmissionReason.BACKEND_UNAVAILABLE,
                detail=exc.detail,
            )

        logger.debug(
            "admission.validate.accepted",
            extra={"mode": effective_mode.value, "key_id": key.id},
        )
        return ValidationResult(valid=True, key_id=key.id)

    def check_and_consume(self, key_id: str) -> LimitResult:
        """Check the key's quota and count the request when admitted.

        Rejected requests never increment usage.

        Args:
            key_id: Id returned by a successful ``validate``.

        Returns:
            LimitResult describing the outcome.
        """
        return self._check_and_consume(key_id, None)

    def _check_and_consume(self, key_id: str, gate: _WriteGate | None) -> LimitResult:
        try:
            key = self._store.find_by_id(key_id)
        except (KeyNotFoundError, KeyStoreError) as exc:
            detail = _store_error_detail(exc)
            logger.error(
                "admission.quota.backend_unavailable",
                extra={"key_id": key_id, "detail": detail, "stage": "read"},
            )
            return _unavailable(detail)

        if not key.enforces_quota:
            return self._track_unlimited(key, gate)

        return self._consume_limited(key, key.quota_limit, gate)  # type: ignore[arg-type]

    def _track_unlimited(self, key: ApiKeyRecord, gate: _WriteGate | None) -> LimitResult:
        """Count usage on a key without an enforced quota.

        Failures are logged, never surfaced: there is no quota to protect.
        """
        if not _may_write(gate):
            return _abandoned(key.id)
        try:
            try:
                new_usage = self._store.increment_usage(key.id, key.usage_count)
            except UsageConflictError:
                fresh = self._store.find_by_id(key.id)
                new_usage = self._store.increment_usage(fresh.id, fresh.usage_count)
        except (UsageConflictError, KeyNotFoundError, KeyStoreError) as exc:
            logger.error(
                "admission.usage.tracking_failed",
                extra={
                    "key_id": key.id,
                    "detail": _store_error_detail(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return LimitResult(allowed=True, current_usage=key.usage_count, limit=None)

        return LimitResult(allowed=True, current_usage=new_usage, limit=None)

    def _consume_limited(
        self,
        key: ApiKeyRecord,
        limit: int,
        gate: _WriteGate | None,
    ) -> LimitResult:
        if key.usage_count >= limit:
            return self._exceeded(key.id, key.usage_count, limit)
        if not _may_write(gate):
            return _abandoned(key.id)

        try:
            new_usage = self._store.increment_usage(key.id, key.usage_count, limit=limit)
        except UsageConflictError:
            return self._retry_after_conflict(key.id, limit)
        except (KeyNotFoundError, KeyStoreError) as exc:
            return self._unavailable_on_write(key.id, exc, key.usage_count, limit)

        logger.info(
            "admission.quota.consumed",
            extra={"key_id": key.id, "usage": new_usage, "limit": limit},
        )
        return LimitResult(allowed=True, current_usage=new_usage, limit=limit)

    def _retry_after_conflict(self, key_id: str, limit: int) -> LimitResult:
        """Re-read after a lost race and try the increment exactly once more."""
        try:
            fresh = self._store.find_by_id(key_id)
        except (KeyNotFoundError, KeyStoreError) as exc:
            return self._unavailable_on_write(key_id, exc, 0, limit)

        if fresh.usage_count >= limit:
            return self._exceeded(key_id, fresh.usage_count, limit)

        try:
            new_usage = self._store.increment_usage(key_id, fresh.usage_count, limit=limit)
        except UsageConflictError:
            logger.warning(
                "admission.quota.contention",
                extra={"key_id": key_id, "usage": fresh.usage_count, "limit": limit},
            )
            return _unavailable("usage_contention", fresh.usage_count, limit)
        except (KeyNotFoundError, KeyStoreError) as exc:
            return self._unavailable_on_write(key_id, exc, fresh.usage_count, limit)

        logger.info(
            "admission.quota.consumed",
            extra={"key_id": key_id, "usage": new_usage, "limit": limit, "retried": True},
        )
        return LimitResult(allowed=True, current_usage=new_usage, limit=limit)

    def _exceeded(self, key_id: str, usage: int, limit: int) -> LimitResult:
        logger.warning(
            "admission.quota.exceeded",
            extra={"key_id": key_id, "usage": usage, "limit": limit},
        )
        return LimitResult(
            allowed=False,
            current_usage=usage,
            limit=limit,
            reason=AdmissionReason.QUOTA_EXCEEDED,
        )

    def _unavailable_on_write(
        self,
        key_id: str,
        exc: Exception,
        usage: int,
        limit: int,
    ) -> LimitResult:
        detail = _store_error_detail(exc)
        logger.error(
            "admission.quota.backend_unavailable",
            extra={"key_id": key_id, "detail": detail, "stage": "increment"},
        )
        return _unavailable(detail, usage, limit)

    async def _run_with_deadline(self, func: Callable[[], T], on_timeout: T) -> T:
        """Run a read-only admission step in the default executor.

        The request fails closed: a step that misses its deadline yields
        ``on_timeout``.
        """
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, func)
        try:
            return await asyncio.wait_for(future, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "admission.timeout",
                extra={"timeout_s": self.timeout_seconds, "stage": "validate"},
            )
            return on_timeout

    async def avalidate(
        self,
        credential: str | None,
        *,
        mode: AuthMode | None = None,
    ) -> ValidationResult:
        """Async ``validate`` bounded by ``timeout_seconds``."""
        return await self._run_with_deadline(
            functools.partial(self.validate, credential, mode=mode),
            ValidationResult(
                valid=False,
                error=AdmissionReason.BACKEND_UNAVAILABLE,
                detail="timeout",
            ),
        )

    async def acheck_and_consume(self, key_id: str) -> LimitResult:
        """Async ``check_and_consume`` bounded by ``timeout_seconds``.

        The deadline covers the reads that precede the increment. A worker that
        has not reached the increment when the deadline passes writes nothing.
        One that already started it is awaited to completion, bounded by the
        store's own timeouts, and its result is returned.
        """
        gate = _WriteGate()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(
            None, functools.partial(self._check_and_consume, key_id, gate)
        )
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            if gate.abandon():
                logger.error(
                    "admission.timeout",
                    extra={"key_id": key_id, "timeout_s": self.timeout_seconds, "stage": "read"},
                )
                return _unavailable("timeout")
            logger.warning(
                "admission.timeout.write_in_progress",
                extra={"key_id": key_id, "timeout_s": self.timeout_seconds},
            )
            return await future
        except asyncio.CancelledError:
            gate.abandon()
            raise
