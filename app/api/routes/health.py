from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.adapters.key_store.base import AbstractKeyRepository, KeyStoreError
from app.adapters.key_store.factory import get_key_store
from app.core.errors import BackendUnavailableAppError

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring systems."""

    return {"status": "ok"}


@router.get("/health/store")
def store_health_check(
    store: Annotated[AbstractKeyRepository, Depends(get_key_store)],
) -> dict:
    """Readiness check verifying the API key store is reachable.

    Raises:
        BackendUnavailableAppError: 503 when the store cannot be queried.
    """

    try:
        store.ping()
    except KeyStoreError as exc:
        raise BackendUnavailableAppError(
            code="key_store_unavailable",
            message="API key store is unreachable",
            details={"hint": exc.detail},
        ) from exc

    return {"status": "ok", "store": type(store).__name__}
