"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any application import so settings
never depend on a developer's local .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("APP_SUMMARIZER_AUTH_MODE", "strict")
os.environ.setdefault("APP_ADMIN_AUTH_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "admin-key-123,admin-key-456")

from typing import Iterator

import pytest

from app.adapters.key_store.in_memory import InMemoryKeyStore


@pytest.fixture
def memory_store() -> InMemoryKeyStore:
    return InMemoryKeyStore()


@pytest.fixture
def app_client(memory_store: InMemoryKeyStore) -> Iterator:
    """TestClient over the real app with a fresh in-memory key store."""
    from fastapi.testclient import TestClient

    from app.adapters.key_store.factory import get_key_store
    from app.main import app

    app.dependency_overrides[get_key_store] = lambda: memory_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
