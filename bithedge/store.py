"""DuckDB-backed document store for policies, pending transactions and events."""

from __future__ import annotations

import json
import logging
import time
import uuid
from enum import Enum
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import duckdb

from . import config as cfg
from .models import (
    PendingPolicyTransaction,
    Policy,
    PolicyEvent,
    PolicyEventType,
    TransactionAction,
    TransactionStatus,
)

LOGGER = logging.getLogger(__name__)

POLICY_COLUMNS = [
    "id",
    "owner",
    "counterparty",
    "policy_type",
    "position_type",
    "protected_value",
    "protection_amount",
    "premium",
    "collateral_token",
    "settlement_token",
    "status",
    "premium_paid",
    "premium_distributed",
    "creation_timestamp",
    "updated_at",
    "expiration_height",
    "on_chain_policy_id",
    "display_name",
    "description",
    "tags",
    "exercised_at",
    "settlement_amount",
    "settlement_price",
    "settlement_transaction_id",
    "settlement_block_height",
]
PENDING_TX_COLUMNS = [
    "id",
    "action_type",
    "status",
    "payload",
    "retry_count",
    "user_id",
    "policy_id",
    "transaction_id",
    "error",
    "result_data",
    "created_at",
    "updated_at",
    "last_attempted_at",
]
EVENT_COLUMNS = [
    "id",
    "policy_id",
    "event_type",
    "data",
    "timestamp",
    "block_height",
    "transaction_id",
]
_JSON_COLUMNS = {"tags", "payload", "result_data", "data"}


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


def _resolve_db_path(db_path: Path | None = None) -> Path:
    if db_path is not None:
        return Path(db_path)
    return cfg.DUCKDB_PATH


def connect(
    read_only: bool = False, *, db_path: Path | None = None
) -> duckdb.DuckDBPyConnection:
    path = _resolve_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS policies (
            id VARCHAR NOT NULL,
            owner VARCHAR NOT NULL,
            counterparty VARCHAR,
            policy_type VARCHAR NOT NULL,
            position_type VARCHAR NOT NULL,
            protected_value DOUBLE,
            protection_amount DOUBLE,
            premium DOUBLE,
            collateral_token VARCHAR,
            settlement_token VARCHAR,
            status VARCHAR NOT NULL,
            premium_paid BOOLEAN,
            premium_distributed BOOLEAN,
            creation_timestamp BIGINT,
            updated_at BIGINT,
            expiration_height BIGINT,
            on_chain_policy_id VARCHAR,
            display_name VARCHAR,
            description VARCHAR,
            tags VARCHAR,
            exercised_at BIGINT,
            settlement_amount DOUBLE,
            settlement_price DOUBLE,
            settlement_transaction_id VARCHAR,
            settlement_block_height BIGINT
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS pending_policy_transactions (
            id VARCHAR NOT NULL,
            action_type VARCHAR NOT NULL,
            status VARCHAR NOT NULL,
            payload VARCHAR,
            retry_count INTEGER,
            user_id VARCHAR,
            policy_id VARCHAR,
            transaction_id VARCHAR,
            error VARCHAR,
            result_data VARCHAR,
            created_at BIGINT,
            updated_at BIGINT,
            last_attempted_at BIGINT
        );
        """
    )
    try:
        conn.execute(
            "ALTER TABLE pending_policy_transactions ADD COLUMN last_attempted_at BIGINT"
        )
    except duckdb.CatalogException:
        pass
    conn.execute("CREATE SEQUENCE IF NOT EXISTS policy_event_seq;")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS policy_events (
            id VARCHAR NOT NULL,
            policy_id VARCHAR NOT NULL,
            event_type VARCHAR NOT NULL,
            data VARCHAR,
            timestamp BIGINT,
            block_height BIGINT,
            transaction_id VARCHAR,
            seq BIGINT DEFAULT nextval('policy_event_seq')
        );
        """
    )


@contextmanager
def transaction(db_path: Path | None = None) -> Iterator[duckdb.DuckDBPyConnection]:
    """Run a handler against one logical transaction of the store.

    Everything written inside the block is committed together; an exception
    rolls the whole block back and propagates.
    """
    conn = connect(db_path=db_path)
    try:
        ensure_schema(conn)
        conn.begin()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
    finally:
        conn.close()


def _encode(column: str, value: Any) -> Any:
    if column in _JSON_COLUMNS:
        return None if value is None else json.dumps(value, default=str)
    if isinstance(value, Enum):
        return value.value
    return value


def _decode_row(columns: Sequence[str], row: Sequence[Any]) -> dict[str, Any]:
    record = dict(zip(columns, row))
    for column in _JSON_COLUMNS.intersection(record):
        raw = record[column]
        record[column] = json.loads(raw) if raw is not None else None
    return record


def _fetch_records(
    conn: duckdb.DuckDBPyConnection, sql: str, params: Sequence[Any] = ()
) -> list[dict[str, Any]]:
    cursor = conn.execute(sql, list(params))
    columns = [desc[0] for desc in cursor.description]
    return [_decode_row(columns, row) for row in cursor.fetchall()]


def _insert(
    conn: duckdb.DuckDBPyConnection, table: str, columns: Sequence[str], record: dict[str, Any]
) -> None:
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
        [_encode(column, record.get(column)) for column in columns],
    )


def _patch(
    conn: duckdb.DuckDBPyConnection,
    table: str,
    allowed: Sequence[str],
    record_id: str,
    fields: dict[str, Any],
) -> None:
    unknown = set(fields) - set(allowed) | ({"id"} & set(fields))
    if unknown:
        raise ValueError(f"Cannot patch {table} columns: {sorted(unknown)}")
    if not fields:
        return
    assignments = ", ".join(f"{column} = ?" for column in fields)
    values = [_encode(column, value) for column, value in fields.items()]
    conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", [*values, record_id])


# --- policies ---


def _policy_from_record(record: dict[str, Any]) -> Policy:
    record["tags"] = record.get("tags") or []
    record["premium_paid"] = bool(record.get("premium_paid"))
    record["premium_distributed"] = bool(record.get("premium_distributed"))
    return Policy(**record)


def insert_policy(conn: duckdb.DuckDBPyConnection, policy: Policy) -> str:
    _insert(conn, "policies", POLICY_COLUMNS, policy.to_dict())
    return policy.id


def get_policy(conn: duckdb.DuckDBPyConnection, policy_id: str) -> Policy | None:
    records = _fetch_records(
        conn,
        f"SELECT {', '.join(POLICY_COLUMNS)} FROM policies WHERE id = ?",
        [policy_id],
    )
    if not records:
        return None
    return _policy_from_record(records[0])


def patch_policy(conn: duckdb.DuckDBPyConnection, policy_id: str, **fields: Any) -> None:
    _patch(conn, "policies", POLICY_COLUMNS, policy_id, fields)


def _policy_filters(
    *,
    owner: str | None = None,
    counterparty: str | None = None,
    statuses: Sequence[str] | None = None,
    policy_type: str | None = None,
    position_type: str | None = None,
    collateral_token: str | None = None,
    from_timestamp: int | None = None,
    to_timestamp: int | None = None,
    expires_before: int | None = None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in (
        ("owner", owner),
        ("counterparty", counterparty),
        ("policy_type", policy_type),
        ("position_type", position_type),
        ("collateral_token", collateral_token),
    ):
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(str(value))
    if statuses:
        clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
        params.extend(str(status) for status in statuses)
    if from_timestamp is not None:
        clauses.append("creation_timestamp >= ?")
        params.append(from_timestamp)
    if to_timestamp is not None:
        clauses.append("creation_timestamp <= ?")
        params.append(to_timestamp)
    if expires_before is not None:
        clauses.append("expiration_height < ?")
        params.append(expires_before)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def query_policies(
    conn: duckdb.DuckDBPyConnection,
    *,
    limit: int | None = None,
    offset: int = 0,
    **filters: Any,
) -> list[Policy]:
    """Return policies matching ``filters``, newest first."""
    where, params = _policy_filters(**filters)
    sql = (
        f"SELECT {', '.join(POLICY_COLUMNS)} FROM policies {where} "
        "ORDER BY creation_timestamp DESC, id"
    )
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params.extend([int(limit), int(offset)])
    elif offset:
        sql += " OFFSET ?"
        params.append(int(offset))
    return [_policy_from_record(record) for record in _fetch_records(conn, sql, params)]


def count_policies(conn: duckdb.DuckDBPyConnection, **filters: Any) -> int:
    where, params = _policy_filters(**filters)
    row = conn.execute(f"SELECT COUNT(*) FROM policies {where}", params).fetchone()
    return int(row[0]) if row else 0


# --- pending transactions ---


def insert_pending_transaction(
    conn: duckdb.DuckDBPyConnection, pending: PendingPolicyTransaction
) -> str:
    record = {column: getattr(pending, column) for column in PENDING_TX_COLUMNS}
    _insert(conn, "pending_policy_transactions", PENDING_TX_COLUMNS, record)
    return pending.id


def new_pending_transaction(
    conn: duckdb.DuckDBPyConnection,
    *,
    action_type: TransactionAction,
    payload: dict[str, Any],
    user_id: str,
    policy_id: str | None = None,
    status: TransactionStatus = TransactionStatus.PENDING,
    error: str | None = None,
) -> PendingPolicyTransaction:
    """Insert a fresh pending transaction with ``retry_count`` 0."""
    timestamp = now_ms()
    pending = PendingPolicyTransaction(
        id=new_id(),
        action_type=action_type,
        status=status,
        payload=payload,
        user_id=user_id,
        created_at=timestamp,
        updated_at=timestamp,
        retry_count=0,
        policy_id=policy_id,
        error=error,
    )
    insert_pending_transaction(conn, pending)
    return pending


def get_pending_transaction(
    conn: duckdb.DuckDBPyConnection, pending_tx_id: str
) -> PendingPolicyTransaction | None:
    records = _fetch_records(
        conn,
        f"SELECT {', '.join(PENDING_TX_COLUMNS)} FROM pending_policy_transactions WHERE id = ?",
        [pending_tx_id],
    )
    if not records:
        return None
    record = records[0]
    record["payload"] = record.get("payload") or {}
    return PendingPolicyTransaction(**record)


def list_pending_transactions(
    conn: duckdb.DuckDBPyConnection,
    *,
    status: TransactionStatus | None = None,
    user_id: str | None = None,
) -> list[PendingPolicyTransaction]:
    clauses: list[str] = []
    params: list[Any] = []
    if status is not None:
        clauses.append("status = ?")
        params.append(str(status))
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    records = _fetch_records(
        conn,
        f"SELECT {', '.join(PENDING_TX_COLUMNS)} FROM pending_policy_transactions {where} "
        "ORDER BY created_at, id",
        params,
    )
    results = []
    for record in records:
        record["payload"] = record.get("payload") or {}
        results.append(PendingPolicyTransaction(**record))
    return results


def patch_pending_transaction(
    conn: duckdb.DuckDBPyConnection, pending_tx_id: str, **fields: Any
) -> None:
    _patch(conn, "pending_policy_transactions", PENDING_TX_COLUMNS, pending_tx_id, fields)


# --- events ---


def insert_policy_event(
    conn: duckdb.DuckDBPyConnection,
    policy_id: str,
    event_type: PolicyEventType,
    data: dict[str, Any] | None = None,
    *,
    timestamp: int | None = None,
    block_height: int | None = None,
    transaction_id: str | None = None,
) -> str:
    event_id = new_id()
    record = {
        "id": event_id,
        "policy_id": policy_id,
        "event_type": str(event_type),
        "data": data or {},
        "timestamp": timestamp if timestamp is not None else now_ms(),
        "block_height": block_height,
        "transaction_id": transaction_id,
    }
    _insert(conn, "policy_events", EVENT_COLUMNS, record)
    LOGGER.debug("Recorded %s event for policy %s", event_type, policy_id)
    return event_id


def list_policy_events(conn: duckdb.DuckDBPyConnection, policy_id: str) -> list[PolicyEvent]:
    records = _fetch_records(
        conn,
        f"SELECT {', '.join(EVENT_COLUMNS)} FROM policy_events WHERE policy_id = ? "
        "ORDER BY timestamp DESC, seq DESC",
        [policy_id],
    )
    for record in records:
        record["data"] = record.get("data") or {}
    return [PolicyEvent(**record) for record in records]
