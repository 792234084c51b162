"""SQL-backed API key store (SQLAlchemy Core).

Usage increments are pushed into a single ``UPDATE ... RETURNING`` statement
so the database serializes concurrent writers on the same row; the
application never reads a counter and writes it back.

Requires a database with ``UPDATE ... RETURNING`` support (SQLite >= 3.35,
PostgreSQL, MariaDB >= 10.5).
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.adapters.key_store.base import (
    UPDATABLE_FIELDS,
    AbstractKeyRepository,
    ApiKeyRecord,
    DuplicateCredentialError,
    IncrementStrategy,
    KeyKind,
    KeyNotFoundError,
    KeyStoreError,
    UsageConflictError,
)

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

api_keys = sa.Table(
    "api_keys",
    metadata,
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("name", sa.String(255), nullable=False),
    sa.Column("secret", sa.String(255), nullable=False, unique=True),
    sa.Column("kind", sa.String(16), nullable=False, server_default=KeyKind.DEV.value),
    sa.Column("usage_count", sa.Integer, nullable=False, server_default="0"),
    sa.Column("quota_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("quota_limit", sa.Integer, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("usage_count >= 0", name="ck_api_keys_usage_non_negative"),
)


def create_sql_engine(database_url: str, *, timeout_seconds: float = 5.0) -> Engine:
    """Create an engine with a bounded connect/busy timeout.

    Args:
        database_url: SQLAlchemy URL.
        timeout_seconds: SQLite busy timeout, or connect timeout elsewhere.

    Returns:
        Configured SQLAlchemy engine.
    """
    url = sa.make_url(database_url)
    if url.get_backend_name() == "sqlite":
        connect_args: dict[str, Any] = {
            "timeout": timeout_seconds,
            "check_same_thread": False,
        }
    else:
        connect_args = {"connect_timeout": int(max(1, timeout_seconds))}
    return sa.create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def _to_record(row: Row[Any]) -> ApiKeyRecord:
    created_at = row.created_at
    if created_at.tzinfo is None:
        # SQLite drops tzinfo; values are always written in UTC.
        created_at = created_at.replace(tzinfo=timezone.utc)
    return ApiKeyRecord(
        id=row.id,
        name=row.name,
        secret=row.secret,
        kind=KeyKind(row.kind),
        usage_count=row.usage_count,
        quota_enabled=bool(row.quota_enabled),
        quota_limit=row.quota_limit,
        created_at=created_at,
    )


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    values = dict(changes)
    if "kind" in values:
        values["kind"] = KeyKind(values["kind"]).value
    return values


class SqlKeyStore(AbstractKeyRepository):
    """Key store over any SQLAlchemy-supported database."""

    def __init__(
        self,
        engine: Engine,
        *,
        strategy: IncrementStrategy = IncrementStrategy.ATOMIC,
        create_schema: bool = True,
    ) -> None:
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine.
            strategy: Increment strategy selected for this store.
            create_schema: Create the ``api_keys`` table when missing.

        Raises:
            KeyStoreError: If schema creation fails.
        """
        self._engine = engine
        self._strategy = IncrementStrategy(strategy)
        if create_schema:
            try:
                metadata.create_all(engine)
            except SQLAlchemyError as exc:
                raise KeyStoreError(f"schema_setup_failed: {type(exc).__name__}") from exc

    @property
    def strategy(self) -> IncrementStrategy:
        return self._strategy

    def _fetch_one(self, clause: sa.ColumnElement[bool]) -> ApiKeyRecord:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(sa.select(api_keys).where(clause)).first()
        except SQLAlchemyError as exc:
            logger.error(
                "key_store.query_failed",
                extra={"error_type": type(exc).__name__},
            )
            raise KeyStoreError(f"query_failed: {type(exc).__name__}") from exc

        if row is None:
            raise KeyNotFoundError()
        return _to_record(row)

    def find_by_credential(self, secret: str) -> ApiKeyRecord:
        return self._fetch_one(api_keys.c.secret == secret)

    def find_by_id(self, key_id: str) -> ApiKeyRecord:
        return self._fetch_one(api_keys.c.id == key_id)

    def increment_usage(
        self,
        key_id: str,
        expected_current: int,
        *,
        limit: int | None = None,
    ) -> int:
        stmt = (
            sa.update(api_keys)
            .where(api_keys.c.id == key_id)
            .values(usage_count=api_keys.c.usage_count + 1)
        )
        if self._strategy is IncrementStrategy.OPTIMISTIC:
            stmt = stmt.where(api_keys.c.usage_count == expected_current)
        if limit is not None:
            stmt = stmt.where(api_keys.c.usage_count < limit)
        stmt = stmt.returning(api_keys.c.usage_count)

        try:
            with self._engine.begin() as conn:
                row = conn.execute(stmt).first()
                if row is not None:
                    return int(row.usage_count)
                exists = conn.execute(
                    sa.select(api_keys.c.id).where(api_keys.c.id == key_id)
                ).first()
        except SQLAlchemyError as exc:
            logger.error(
                "key_store.increment_failed",
                extra={"key_id": key_id, "error_type": type(exc).__name__},
            )
            raise KeyStoreError(f"increment_failed: {type(exc).__name__}") from exc

        if exists is None:
            raise KeyNotFoundError(key_id)
        raise UsageConflictError(key_id)

    def create(self, record: ApiKeyRecord) -> ApiKeyRecord:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    sa.insert(api_keys).values(
                        id=record.id,
                        name=record.name,
                        secret=record.secret,
                        kind=record.kind.value,
                        usage_count=record.usage_count,
                        quota_enabled=record.quota_enabled,
                        quota_limit=record.quota_limit,
                        created_at=record.created_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateCredentialError(record.id) from exc
        except SQLAlchemyError as exc:
            raise KeyStoreError(f"insert_failed: {type(exc).__name__}") from exc
        return record

    def list_keys(self, *, kind: KeyKind | None = None) -> list[ApiKeyRecord]:
        stmt = sa.select(api_keys).order_by(api_keys.c.created_at.desc())
        if kind is not None:
            stmt = stmt.where(api_keys.c.kind == KeyKind(kind).value)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise KeyStoreError(f"query_failed: {type(exc).__name__}") from exc
        return [_to_record(row) for row in rows]

    def update(self, key_id: str, **changes: Any) -> ApiKeyRecord:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        if not changes:
            return self.find_by_id(key_id)

        stmt = (
            sa.update(api_keys)
            .where(api_keys.c.id == key_id)
            .values(**_column_values(changes))
            .returning(*api_keys.c)
        )
        try:
            with self._engine.begin() as conn:
                row = conn.execute(stmt).first()
        except IntegrityError as exc:
            raise DuplicateCredentialError(key_id) from exc
        except SQLAlchemyError as exc:
            raise KeyStoreError(f"update_failed: {type(exc).__name__}") from exc

        if row is None:
            raise KeyNotFoundError(key_id)
        return _to_record(row)

    def delete(self, key_id: str) -> None:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(sa.delete(api_keys).where(api_keys.c.id == key_id))
        except SQLAlchemyError as exc:
            raise KeyStoreError(f"delete_failed: {type(exc).__name__}") from exc

        if result.rowcount == 0:
            raise KeyNotFoundError(key_id)

    def ping(self) -> None:
        try:
            with self._engine.connect() as conn:
                conn.execute(sa.select(sa.func.count()).select_from(api_keys))
        except SQLAlchemyError as exc:
            raise KeyStoreError(f"ping_failed: {type(exc).__name__}") from exc
