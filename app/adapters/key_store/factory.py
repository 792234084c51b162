"""Factory and process-wide accessor for the API key store."""

from __future__ import annotations

import logging

from app.adapters.key_store.base import AbstractKeyRepository, IncrementStrategy
from app.adapters.key_store.in_memory import InMemoryKeyStore
from app.adapters.key_store.sql import SqlKeyStore, create_sql_engine
from app.core.config import settings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


_store: AbstractKeyRepository | None = None
_store_config: tuple[str, str, str] | None = None


def create_key_store() -> AbstractKeyRepository:
    """Instantiate the key store selected by configuration.

    Reads ``settings.store``. The increment strategy is fixed here, at
    construction time, for the lifetime of the store.

    Returns:
        AbstractKeyRepository: Configured key store.

    Raises:
        ValidationAppError: If the backend or strategy is unknown.
    """
    backend = settings.store.backend.lower()
    try:
        strategy = IncrementStrategy(settings.store.increment_strategy.lower())
    except ValueError as exc:
        raise ValidationAppError(
            code="store_unknown_strategy",
            message=(
                f"Unknown increment strategy: '{settings.store.increment_strategy}'. "
                "Supported strategies: atomic, optimistic"
            ),
        ) from exc

    if backend == "memory":
        logger.info("key_store.created", extra={"backend": backend, "strategy": strategy.value})
        return InMemoryKeyStore(strategy=strategy)

    if backend == "sql":
        engine = create_sql_engine(
            settings.store.database_url,
            timeout_seconds=settings.store.connect_timeout_seconds,
        )
        logger.info(
            "key_store.created",
            extra={
                "backend": backend,
                "strategy": strategy.value,
                "dialect": engine.dialect.name,
            },
        )
        return SqlKeyStore(engine, strategy=strategy)

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown key store backend: '{backend}'. Supported backends: memory, sql",
    )


def get_key_store() -> AbstractKeyRepository:
    """Return the process-wide key store.

    The instance is cached in-module so in-memory state survives across
    requests. If configuration changes (primarily in tests), the store is
    rebuilt.
    """

    global _store, _store_config

    config = (
        settings.store.backend,
        settings.store.database_url,
        settings.store.increment_strategy,
    )

    if _store is None or _store_config != config:
        _store = create_key_store()
        _store_config = config

    return _store
