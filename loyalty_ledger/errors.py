"""
Typed errors raised by the ledger services.

Services never raise transport errors; the HTTP wrapper maps every
``LedgerError`` to a JSON body with the error's status code.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for ledger errors"""

    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(LedgerError):
    """Malformed or out-of-range input, detected before any mutation"""

    status_code = 422


class NotFoundError(LedgerError):
    """Missing program, account or customer"""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} with identifier {identifier} not found",
            details={"resource": resource, "identifier": str(identifier)},
        )


class ConflictError(LedgerError):
    """Duplicate active enrollment"""

    status_code = 409


class PolicyViolationError(LedgerError):
    """Regulatory or program-rule breach"""

    status_code = 422

    def __init__(self, message: str, rule: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"rule": rule, **(details or {})})
        self.rule = rule


class InsufficientBalanceError(LedgerError):
    status_code = 409

    def __init__(self, account_id: Any, available: int, requested: int):
        super().__init__(
            message=f"Insufficient points. Available: {available}, requested: {requested}",
            details={"account_id": str(account_id), "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class ClosedAccountError(LedgerError):
    status_code = 409

    def __init__(self, account_id: Any):
        super().__init__(
            message=f"Account {account_id} is closed",
            details={"account_id": str(account_id)},
        )


class ConcurrencyError(LedgerError):
    """Serialization conflict that outlived the bounded retries. Safe to retry."""

    status_code = 503
    retryable = True

    def __init__(self, account_id: Any, attempts: int):
        super().__init__(
            message=f"Concurrent update on account {account_id}; gave up after {attempts} attempts",
            details={"account_id": str(account_id), "attempts": attempts},
        )
