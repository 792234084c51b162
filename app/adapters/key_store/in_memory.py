"""In-memory API key store.

Notes:
- Per-process only: keys and usage counters vanish on restart and are not
  shared between workers.
- Thread-safe: every read-check-write sequence runs under one lock, so
  concurrent increments on the same key are serialized.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Iterable

from app.adapters.key_store.base import (
    UPDATABLE_FIELDS,
    AbstractKeyRepository,
    ApiKeyRecord,
    DuplicateCredentialError,
    IncrementStrategy,
    KeyKind,
    KeyNotFoundError,
    UsageConflictError,
)


class InMemoryKeyStore(AbstractKeyRepository):
    """Key store backed by a dict, suitable for development and tests.

    Records are immutable dataclasses; updates swap the stored instance, so
    callers never observe a record changing under them.
    """

    def __init__(
        self,
        *,
        strategy: IncrementStrategy = IncrementStrategy.ATOMIC,
        records: Iterable[ApiKeyRecord] = (),
    ) -> None:
        """Initialize the store.

        Args:
            strategy: Increment strategy selected for this store.
            records: Optional records to preload.

        Raises:
            DuplicateCredentialError: If preloaded records share a secret.
        """
        self._strategy = IncrementStrategy(strategy)
        self._lock = threading.RLock()
        self._by_id: dict[str, ApiKeyRecord] = {}
        self._id_by_secret: dict[str, str] = {}
        for record in records:
            self.create(record)

    @property
    def strategy(self) -> IncrementStrategy:
        return self._strategy

    def _get_locked(self, key_id: str) -> ApiKeyRecord:
        record = self._by_id.get(key_id)
        if record is None:
            raise KeyNotFoundError(key_id)
        return record

    def find_by_credential(self, secret: str) -> ApiKeyRecord:
        with self._lock:
            key_id = self._id_by_secret.get(secret)
            if key_id is None:
                raise KeyNotFoundError("credential")
            return self._by_id[key_id]

    def find_by_id(self, key_id: str) -> ApiKeyRecord:
        with self._lock:
            return self._get_locked(key_id)

    def increment_usage(
        self,
        key_id: str,
        expected_current: int,
        *,
        limit: int | None = None,
    ) -> int:
        with self._lock:
            record = self._get_locked(key_id)

            if (
                self._strategy is IncrementStrategy.OPTIMISTIC
                and record.usage_count != expected_current
            ):
                raise UsageConflictError(key_id)
            if limit is not None and record.usage_count >= limit:
                raise UsageConflictError(key_id)

            updated = replace(record, usage_count=record.usage_count + 1)
            self._by_id[key_id] = updated
            return updated.usage_count

    def create(self, record: ApiKeyRecord) -> ApiKeyRecord:
        with self._lock:
            if record.secret in self._id_by_secret or record.id in self._by_id:
                raise DuplicateCredentialError(record.id)
            self._by_id[record.id] = record
            self._id_by_secret[record.secret] = record.id
            return record

    def list_keys(self, *, kind: KeyKind | None = None) -> list[ApiKeyRecord]:
        with self._lock:
            records = [
                record
                for record in self._by_id.values()
                if kind is None or record.kind == kind
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def update(self, key_id: str, **changes: Any) -> ApiKeyRecord:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        with self._lock:
            record = self._get_locked(key_id)
            new_secret = changes.get("secret", record.secret)
            owner = self._id_by_secret.get(new_secret)
            if owner is not None and owner != key_id:
                raise DuplicateCredentialError(key_id)

            updated = replace(record, **changes)
            self._by_id[key_id] = updated
            if new_secret != record.secret:
                del self._id_by_secret[record.secret]
                self._id_by_secret[new_secret] = key_id
            return updated

    def delete(self, key_id: str) -> None:
        with self._lock:
            record = self._get_locked(key_id)
            del self._by_id[key_id]
            self._id_by_secret.pop(record.secret, None)

    def ping(self) -> None:
        return None
