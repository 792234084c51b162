"""Tests for the SQLAlchemy key store against a file-backed SQLite database."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.adapters.key_store.base import (
    DuplicateCredentialError,
    IncrementStrategy,
    KeyKind,
    KeyNotFoundError,
    KeyStoreError,
    UsageConflictError,
)
from app.adapters.key_store.sql import SqlKeyStore, create_sql_engine
from app.services.admission_service import AdmissionController, AdmissionReason
from tests.factories import make_record


def _store(tmp_path: Path, strategy: IncrementStrategy = IncrementStrategy.ATOMIC) -> SqlKeyStore:
    engine = create_sql_engine(f"sqlite:///{tmp_path / 'keys.db'}", timeout_seconds=10.0)
    return SqlKeyStore(engine, strategy=strategy)


@pytest.fixture
def sql_store(tmp_path: Path) -> SqlKeyStore:
    return _store(tmp_path)


class TestCrud:
    """Test persistence round trips through the api_keys table."""

    def test_create_and_find(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(id="k1", secret="abc", quota_enabled=True, quota_limit=5))

        by_secret = sql_store.find_by_credential("abc")
        by_id = sql_store.find_by_id("k1")

        assert by_secret == by_id
        assert by_id.quota_enabled is True
        assert by_id.quota_limit == 5
        assert by_id.kind is KeyKind.DEV
        assert by_id.created_at.tzinfo is not None

    def test_unknown_lookups(self, sql_store: SqlKeyStore) -> None:
        with pytest.raises(KeyNotFoundError):
            sql_store.find_by_credential("missing")
        with pytest.raises(KeyNotFoundError):
            sql_store.find_by_id("missing")

    def test_duplicate_secret(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(id="k1", secret="abc"))

        with pytest.raises(DuplicateCredentialError):
            sql_store.create(make_record(id="k2", secret="abc"))

    def test_list_newest_first_with_filter(self, sql_store: SqlKeyStore) -> None:
        now = datetime.now(timezone.utc)
        sql_store.create(make_record(id="old", secret="s1", created_at=now - timedelta(hours=1)))
        sql_store.create(make_record(id="new", secret="s2", kind=KeyKind.PROD, created_at=now))

        assert [r.id for r in sql_store.list_keys()] == ["new", "old"]
        assert [r.id for r in sql_store.list_keys(kind=KeyKind.PROD)] == ["new"]

    def test_update_fields(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(secret="abc"))

        updated = sql_store.update(
            "key-1",
            name="Renamed",
            kind=KeyKind.PROD,
            quota_enabled=True,
            quota_limit=3,
        )

        assert updated.name == "Renamed"
        assert updated.kind is KeyKind.PROD
        assert updated.quota_limit == 3
        assert updated.usage_count == 0

    def test_update_unknown_and_duplicate(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(id="k1", secret="a"))
        sql_store.create(make_record(id="k2", secret="b"))

        with pytest.raises(KeyNotFoundError):
            sql_store.update("missing", name="x")
        with pytest.raises(DuplicateCredentialError):
            sql_store.update("k2", secret="a")

    def test_update_rejects_usage_field(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record())

        with pytest.raises(ValueError):
            sql_store.update("key-1", usage_count=0)

    def test_delete(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record())

        sql_store.delete("key-1")

        with pytest.raises(KeyNotFoundError):
            sql_store.find_by_id("key-1")
        with pytest.raises(KeyNotFoundError):
            sql_store.delete("key-1")

    def test_ping(self, sql_store: SqlKeyStore) -> None:
        sql_store.ping()


class TestIncrementUsage:
    """Test the single-statement usage increment."""

    def test_atomic_increment(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(usage_count=4))

        assert sql_store.increment_usage("key-1", expected_current=0) == 5

    def test_optimistic_conflict(self, tmp_path: Path) -> None:
        store = _store(tmp_path, IncrementStrategy.OPTIMISTIC)
        store.create(make_record(usage_count=4))

        with pytest.raises(UsageConflictError):
            store.increment_usage("key-1", expected_current=3)
        assert store.increment_usage("key-1", expected_current=4) == 5

    @pytest.mark.parametrize("strategy", list(IncrementStrategy))
    def test_limit_guard(self, tmp_path: Path, strategy: IncrementStrategy) -> None:
        store = _store(tmp_path, strategy)
        store.create(make_record(usage_count=2, quota_enabled=True, quota_limit=2))

        with pytest.raises(UsageConflictError):
            store.increment_usage("key-1", expected_current=2, limit=2)
        assert store.find_by_id("key-1").usage_count == 2

    def test_increment_unknown_key(self, sql_store: SqlKeyStore) -> None:
        with pytest.raises(KeyNotFoundError):
            sql_store.increment_usage("missing", expected_current=0)

    def test_concurrent_increments_are_serialized(self, sql_store: SqlKeyStore) -> None:
        sql_store.create(make_record(quota_enabled=True, quota_limit=20))

        def attempt(_: int) -> bool:
            try:
                sql_store.increment_usage("key-1", 0, limit=20)
            except UsageConflictError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(attempt, range(30)))

        assert sum(outcomes) == 20
        assert sql_store.find_by_id("key-1").usage_count == 20


class TestErrorMapping:
    """Driver errors surface as KeyStoreError."""

    def _broken_store(self) -> SqlKeyStore:
        engine = MagicMock()
        engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))
        engine.begin.side_effect = OperationalError("UPDATE", {}, Exception("db down"))
        return SqlKeyStore(engine, create_schema=False)

    def test_lookup_failure(self) -> None:
        store = self._broken_store()

        with pytest.raises(KeyStoreError) as exc_info:
            store.find_by_credential("abc")

        assert exc_info.value.detail == "query_failed: OperationalError"

    def test_increment_failure(self) -> None:
        store = self._broken_store()

        with pytest.raises(KeyStoreError) as exc_info:
            store.increment_usage("key-1", 0)

        assert exc_info.value.detail == "increment_failed: OperationalError"

    def test_ping_failure(self) -> None:
        with pytest.raises(KeyStoreError):
            self._broken_store().ping()


@pytest.mark.parametrize("strategy", list(IncrementStrategy))
def test_admission_last_slot_goes_to_one_caller(tmp_path: Path, strategy: IncrementStrategy) -> None:
    store = _store(tmp_path, strategy)
    store.create(make_record(usage_count=4, quota_enabled=True, quota_limit=5))
    controller = AdmissionController(store)

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: controller.check_and_consume("key-1"), range(12)))

    assert sum(1 for r in results if r.allowed) == 1
    assert all(r.reason is AdmissionReason.QUOTA_EXCEEDED for r in results if not r.allowed)
    assert store.find_by_id("key-1").usage_count == 5
