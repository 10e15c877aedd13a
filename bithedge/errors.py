"""Exception types raised by BitHedge handlers and blockchain shims."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class BitHedgeError(Exception):
    """Base class for errors surfaced to callers."""


class ConfigurationError(BitHedgeError):
    pass


class NotAuthenticatedError(BitHedgeError):
    pass


class PolicyNotFoundError(BitHedgeError):
    pass


class PendingTransactionNotFoundError(BitHedgeError):
    pass


class InvalidPolicyStatusError(BitHedgeError):
    pass


class UnauthorizedCounterpartyError(BitHedgeError):
    pass


class UnauthorizedOwnerError(BitHedgeError):
    pass


class InvalidTransitionError(BitHedgeError):
    pass


class PolicyValidationError(BitHedgeError):
    pass


class WalletCancelledError(BitHedgeError):
    """Raised when the user dismisses the wallet signing popup."""


class BlockchainErrorCode(StrEnum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    CONTRACT_ERROR = "CONTRACT_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_PARAMS = "INVALID_PARAMS"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class BlockchainError(BitHedgeError):
    def __init__(
        self,
        message: str,
        code: BlockchainErrorCode = BlockchainErrorCode.UNKNOWN_ERROR,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}


_NETWORK_MARKERS = ("connection", "network", "econnrefused", "fetch")
_UNAUTHORIZED_MARKERS = ("unauthorized", "permission", "not allowed")
_TIMEOUT_MARKERS = ("timeout", "timed out")


def format_contract_error(exc: BaseException) -> BlockchainError:
    """Classify an arbitrary failure from a contract call by its message."""
    if isinstance(exc, BlockchainError):
        return exc
    message = str(exc) or "Contract call failed"
    lowered = message.lower()
    code = BlockchainErrorCode.CONTRACT_ERROR
    if any(marker in lowered for marker in _NETWORK_MARKERS):
        code = BlockchainErrorCode.NETWORK_ERROR
    if any(marker in lowered for marker in _UNAUTHORIZED_MARKERS):
        code = BlockchainErrorCode.UNAUTHORIZED
    if any(marker in lowered for marker in _TIMEOUT_MARKERS):
        code = BlockchainErrorCode.TIMEOUT
    return BlockchainError(message, code, {"exception": type(exc).__name__})
