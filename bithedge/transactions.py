"""Pending policy transactions: status transitions and on-chain reconciliation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import duckdb
import requests

from . import policy_lifecycle, stacks_node, store
from .config import NetworkConfig
from .errors import (
    BitHedgeError,
    InvalidTransitionError,
    PendingTransactionNotFoundError,
)
from .models import (
    PendingPolicyTransaction,
    TransactionAction,
    TransactionStatus,
)

LOGGER = logging.getLogger(__name__)

MAX_PENDING_MS = 30 * 60 * 1000
FINAL_NODE_STATUSES = frozenset(
    {TransactionStatus.CONFIRMED, TransactionStatus.FAILED, TransactionStatus.REPLACED}
)

VALID_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset(
        {
            TransactionStatus.SUBMITTED,
            TransactionStatus.FAILED,
            TransactionStatus.EXPIRED,
            TransactionStatus.REPLACED,
        }
    ),
    TransactionStatus.SUBMITTED: frozenset(
        {TransactionStatus.CONFIRMED, TransactionStatus.FAILED, TransactionStatus.REPLACED}
    ),
    TransactionStatus.FAILED: frozenset({TransactionStatus.REPLACED}),
    TransactionStatus.EXPIRED: frozenset({TransactionStatus.REPLACED}),
    TransactionStatus.CONFIRMED: frozenset(),
    TransactionStatus.REPLACED: frozenset(),
}


def is_valid_transition(current: TransactionStatus, new: TransactionStatus) -> bool:
    current, new = TransactionStatus(current), TransactionStatus(new)
    return current is new or new in VALID_TRANSITIONS[current]


def create_pending_policy_transaction(
    *,
    action_type: TransactionAction,
    payload: dict[str, Any],
    user_id: str,
    policy_id: str | None = None,
    status: TransactionStatus = TransactionStatus.PENDING,
    db_path: Path | None = None,
) -> PendingPolicyTransaction:
    with store.transaction(db_path) as conn:
        pending = store.new_pending_transaction(
            conn,
            action_type=action_type,
            payload=payload,
            user_id=user_id,
            policy_id=policy_id,
            status=status,
        )
    LOGGER.info("Created %s pending transaction %s", pending.action_type, pending.id)
    return pending


def get_pending_transaction(
    pending_tx_id: str, *, db_path: Path | None = None
) -> PendingPolicyTransaction | None:
    with store.transaction(db_path) as conn:
        return store.get_pending_transaction(conn, pending_tx_id)


def _on_confirmed(
    conn: duckdb.DuckDBPyConnection,
    pending: PendingPolicyTransaction,
    transaction_id: str | None,
    data: dict[str, Any],
) -> None:
    match pending.action_type:
        case TransactionAction.CREATE:
            policy_lifecycle.apply_confirmed_creation(
                conn, pending, transaction_id=transaction_id, data=data
            )
        case TransactionAction.ACCEPT:
            policy_lifecycle.apply_confirmed_acceptance(
                conn, pending, transaction_id=transaction_id, data=data
            )
        case TransactionAction.SETTLE:
            policy_lifecycle.apply_confirmed_settlement(
                conn, pending, transaction_id=transaction_id, data=data
            )
        case TransactionAction.PREMIUM_DISTRIBUTION:
            policy_id = pending.payload.get("policyId") or pending.policy_id
            policy_lifecycle.apply_premium_distribution(
                conn,
                policy_id,
                transaction_id=transaction_id,
                block_height=data.get("blockHeight"),
            )


def apply_transaction_status(
    conn: duckdb.DuckDBPyConnection,
    pending_tx_id: str,
    status: TransactionStatus,
    *,
    transaction_id: str | None = None,
    error: str | None = None,
    data: dict[str, Any] | None = None,
) -> PendingPolicyTransaction:
    """Move one pending transaction to ``status`` on an open connection.

    Confirmation and failure side effects on the linked policy are written in
    the same transaction as the status change.
    """
    status = TransactionStatus(status)
    pending = store.get_pending_transaction(conn, pending_tx_id)
    if pending is None:
        raise PendingTransactionNotFoundError(f"Pending transaction {pending_tx_id} not found")
    if pending.status is status:
        LOGGER.debug("Pending transaction %s already %s", pending_tx_id, status)
        return pending
    if not is_valid_transition(pending.status, status):
        raise InvalidTransitionError(
            f"Invalid status transition from {pending.status} to {status}"
        )

    fields: dict[str, Any] = {"status": status, "updated_at": store.now_ms()}
    if transaction_id:
        fields["transaction_id"] = transaction_id
    if error:
        fields["error"] = error
    if data:
        fields["result_data"] = data
    store.patch_pending_transaction(conn, pending_tx_id, **fields)
    LOGGER.info("Pending transaction %s: %s -> %s", pending_tx_id, pending.status, status)

    txid = transaction_id or pending.transaction_id
    if status is TransactionStatus.CONFIRMED:
        _on_confirmed(conn, pending, txid, data or {})
    elif status is TransactionStatus.FAILED:
        policy_lifecycle.apply_failed_action(conn, pending, transaction_id=txid, error=error)

    return store.get_pending_transaction(conn, pending_tx_id)


def update_transaction_status(
    pending_tx_id: str,
    status: TransactionStatus,
    *,
    transaction_id: str | None = None,
    error: str | None = None,
    data: dict[str, Any] | None = None,
    db_path: Path | None = None,
) -> PendingPolicyTransaction:
    with store.transaction(db_path) as conn:
        return apply_transaction_status(
            conn,
            pending_tx_id,
            status,
            transaction_id=transaction_id,
            error=error,
            data=data,
        )


def record_wallet_submission(
    pending_tx_id: str, txid: str, *, db_path: Path | None = None
) -> PendingPolicyTransaction:
    """Mark a pending transaction Submitted once the wallet has broadcast it."""
    return update_transaction_status(
        pending_tx_id, TransactionStatus.SUBMITTED, transaction_id=txid, db_path=db_path
    )


def increment_retry_count(
    pending_tx_id: str, *, db_path: Path | None = None
) -> PendingPolicyTransaction | None:
    """Count one more stalled check against a pending transaction."""
    with store.transaction(db_path) as conn:
        pending = store.get_pending_transaction(conn, pending_tx_id)
        if pending is None:
            return None
        store.patch_pending_transaction(
            conn,
            pending_tx_id,
            retry_count=(pending.retry_count or 0) + 1,
            last_attempted_at=store.now_ms(),
        )
        return store.get_pending_transaction(conn, pending_tx_id)


def _reconcile_one(
    pending: PendingPolicyTransaction,
    *,
    network: NetworkConfig | None,
    session: requests.Session | None,
    db_path: Path | None,
) -> TransactionStatus:
    result = stacks_node.check_transaction_status(
        pending.transaction_id, network=network, session=session
    )
    if result.status not in FINAL_NODE_STATUSES:
        if store.now_ms() - pending.updated_at > MAX_PENDING_MS:
            updated = increment_retry_count(pending.id, db_path=db_path)
            LOGGER.warning(
                "Transaction %s pending for over %d minutes (retry %d)",
                pending.transaction_id,
                MAX_PENDING_MS // 60_000,
                updated.retry_count,
            )
        return pending.status

    data: dict[str, Any] = {}
    if result.block_height is not None:
        data["blockHeight"] = result.block_height
    updated = update_transaction_status(
        pending.id,
        result.status,
        transaction_id=pending.transaction_id,
        error=result.error,
        data=data or None,
        db_path=db_path,
    )
    return updated.status


def reconcile_submitted_transactions(
    *,
    network: NetworkConfig | None = None,
    session: requests.Session | None = None,
    db_path: Path | None = None,
) -> dict[str, TransactionStatus]:
    """Ask the node about every Submitted transaction and apply final outcomes.

    Returns the status each examined pending transaction ended the pass with.
    A failure on one record is logged and leaves it Submitted; the pass moves
    on. Records still unresolved after ``MAX_PENDING_MS`` get their
    ``retry_count`` bumped.
    """
    with store.transaction(db_path) as conn:
        submitted = store.list_pending_transactions(conn, status=TransactionStatus.SUBMITTED)
    LOGGER.info("Reconciling %d submitted transactions", len(submitted))

    outcomes: dict[str, TransactionStatus] = {}
    errors = 0
    for pending in submitted:
        if not pending.transaction_id:
            LOGGER.warning("Submitted transaction %s has no txid; skipping", pending.id)
            outcomes[pending.id] = pending.status
            continue
        try:
            outcomes[pending.id] = _reconcile_one(
                pending, network=network, session=session, db_path=db_path
            )
        except (BitHedgeError, RuntimeError, KeyError) as exc:
            LOGGER.error("Error processing pending transaction %s: %r", pending.id, exc)
            outcomes[pending.id] = pending.status
            errors += 1
    if errors:
        LOGGER.error("%d of %d submitted transactions failed to reconcile", errors, len(submitted))
    return outcomes
