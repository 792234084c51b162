"""Key store interfaces.

The admission controller depends on :class:`AbstractCredentialStore` only
(lookup plus usage increment). Key management needs the wider
:class:`AbstractKeyRepository` contract. Both are implemented by the same
concrete stores so backends can be swapped (in-memory, SQL) without touching
services or the API layer.

Adapters contain no business logic: they only translate storage outcomes into
the exceptions defined here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class KeyKind(str, Enum):
    """Informational key classification."""

    DEV = "dev"
    PROD = "prod"


class IncrementStrategy(str, Enum):
    """How a store guarantees that concurrent increments never lose updates.

    ATOMIC: the store adds one to the stored value in a single statement and
        ignores ``expected_current``.
    OPTIMISTIC: compare-and-swap against ``expected_current``.
    """

    ATOMIC = "atomic"
    OPTIMISTIC = "optimistic"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ApiKeyRecord:
    """Stored API key.

    Attributes:
        id: Opaque unique identifier.
        name: Human-readable label.
        secret: Bearer string presented by callers (unique).
        kind: dev or prod.
        usage_count: Number of admitted requests so far.
        quota_enabled: Whether ``quota_limit`` is enforced.
        quota_limit: Maximum admitted requests when the quota is enabled.
        created_at: Creation timestamp (UTC).
    """

    id: str
    name: str
    secret: str
    kind: KeyKind = KeyKind.DEV
    usage_count: int = 0
    quota_enabled: bool = False
    quota_limit: int | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def enforces_quota(self) -> bool:
        return self.quota_enabled and self.quota_limit is not None


class CredentialStoreError(Exception):
    """Base class for key store failures."""


class KeyNotFoundError(CredentialStoreError):
    """Raised when no key matches the lookup."""


class KeyStoreError(CredentialStoreError):
    """Raised when the underlying storage fails or is unreachable."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UsageConflictError(CredentialStoreError):
    """Raised when an increment precondition does not hold.

    Either the stored usage no longer equals the expected value (optimistic
    strategy) or it already reached the supplied limit (both strategies).
    """


class DuplicateCredentialError(CredentialStoreError):
    """Raised when a secret is already assigned to another key."""


class AbstractCredentialStore(ABC):
    """Lookup and usage accounting used by the admission controller."""

    @abstractmethod
    def find_by_credential(self, secret: str) -> ApiKeyRecord:
        """Return the key whose secret equals ``secret``.

        Raises:
            KeyNotFoundError: No key uses this secret.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError

    @abstractmethod
    def find_by_id(self, key_id: str) -> ApiKeyRecord:
        """Return the key with the given id.

        Raises:
            KeyNotFoundError: Unknown id.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError

    @abstractmethod
    def increment_usage(
        self,
        key_id: str,
        expected_current: int,
        *,
        limit: int | None = None,
    ) -> int:
        """Add one to the key's usage counter and return the new value.

        Must be atomic with respect to concurrent callers on the same key.

        Args:
            key_id: Key to update.
            expected_current: Usage value the caller last observed.
            limit: When given, the increment only applies while the stored
                usage is below this value.

        Returns:
            The usage count after the increment.

        Raises:
            UsageConflictError: Precondition failed; nothing was written.
            KeyNotFoundError: Unknown id.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError


class AbstractKeyRepository(AbstractCredentialStore):
    """Full CRUD contract used by key management and health checks."""

    @abstractmethod
    def create(self, record: ApiKeyRecord) -> ApiKeyRecord:
        """Persist a new key.

        Raises:
            DuplicateCredentialError: The secret is already in use.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError

    @abstractmethod
    def list_keys(self, *, kind: KeyKind | None = None) -> list[ApiKeyRecord]:
        """Return keys, newest first, optionally filtered by kind."""
        raise NotImplementedError

    @abstractmethod
    def update(self, key_id: str, **changes: Any) -> ApiKeyRecord:
        """Apply field changes to a key and return the updated record.

        ``usage_count`` cannot be changed through this method.

        Raises:
            KeyNotFoundError: Unknown id.
            DuplicateCredentialError: New secret is already in use.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key_id: str) -> None:
        """Remove a key.

        Raises:
            KeyNotFoundError: Unknown id.
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> None:
        """Check that the store is reachable.

        Raises:
            KeyStoreError: Storage failure.
        """
        raise NotImplementedError


UPDATABLE_FIELDS = frozenset({"name", "secret", "kind", "quota_enabled", "quota_limit"})
