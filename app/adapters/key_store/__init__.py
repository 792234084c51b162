"""API key store adapters.

The in-memory store serves development and tests; the SQL store persists
keys in any SQLAlchemy-supported database. Both implement the same
interfaces so services never depend on a concrete backend.
"""

from app.adapters.key_store.base import (
    AbstractCredentialStore,
    AbstractKeyRepository,
    ApiKeyRecord,
    CredentialStoreError,
    DuplicateCredentialError,
    IncrementStrategy,
    KeyKind,
    KeyNotFoundError,
    KeyStoreError,
    UsageConflictError,
)
from app.adapters.key_store.factory import create_key_store, get_key_store
from app.adapters.key_store.in_memory import InMemoryKeyStore
from app.adapters.key_store.sql import SqlKeyStore

__all__ = [
    "AbstractCredentialStore",
    "AbstractKeyRepository",
    "ApiKeyRecord",
    "CredentialStoreError",
    "DuplicateCredentialError",
    "IncrementStrategy",
    "InMemoryKeyStore",
    "KeyKind",
    "KeyNotFoundError",
    "KeyStoreError",
    "SqlKeyStore",
    "UsageConflictError",
    "create_key_store",
    "get_key_store",
]
