# studex/core/errors.py
from __future__ import annotations

from typing import Dict, Optional


class EscrowError(Exception):
    """
    Base for every typed error the escrow core raises.

    Each subclass carries the HTTP status it maps to and a stable code.
    Raised before commit: the unit of work rolls back and the entity is unchanged.
    """

    status_code: int = 400
    code: str = "EscrowError"
    default_message: str = "Escrow operation failed."

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.errors:
            body["errors"] = self.errors
        return body


# ─────────────────────────────────────────────
# VALIDATION (400)
# ─────────────────────────────────────────────

class InvalidContract(EscrowError, ValueError):
    status_code = 400
    code = "InvalidContract"
    default_message = "Invalid contract."


class InvalidAmount(EscrowError, ValueError):
    status_code = 400
    code = "InvalidAmount"
    default_message = "Amount must be a positive integer."


class InvalidResolution(EscrowError, ValueError):
    status_code = 400
    code = "InvalidResolution"
    default_message = "Invalid dispute resolution."


class InvalidRequest(EscrowError, ValueError):
    status_code = 400
    code = "InvalidRequest"
    default_message = "Invalid request."


class InvalidIdentifier(InvalidRequest):
    code = "InvalidIdentifier"
    default_message = "Malformed identifier."


# ─────────────────────────────────────────────
# AUTH (401 / 403)
# ─────────────────────────────────────────────

class Unauthorized(EscrowError):
    status_code = 401
    code = "Unauthorized"
    default_message = "Invalid or expired token."


class Forbidden(EscrowError, PermissionError):
    status_code = 403
    code = "Forbidden"
    default_message = "Actor is not permitted to perform this action."


# ─────────────────────────────────────────────
# RESOURCES (402)
# ─────────────────────────────────────────────

class InsufficientFunds(EscrowError):
    status_code = 402
    code = "InsufficientFunds"
    default_message = "Insufficient available balance."


# ─────────────────────────────────────────────
# LOOKUP (404)
# ─────────────────────────────────────────────

class ContractNotFound(EscrowError, LookupError):
    status_code = 404
    code = "ContractNotFound"
    default_message = "Contract not found."


class DisputeNotFound(EscrowError, LookupError):
    status_code = 404
    code = "DisputeNotFound"
    default_message = "Dispute not found."


class NotificationNotFound(EscrowError, LookupError):
    status_code = 404
    code = "NotificationNotFound"
    default_message = "Notification not found."


# ─────────────────────────────────────────────
# STATE (409 / 410)
# ─────────────────────────────────────────────

class IllegalTransition(EscrowError):
    status_code = 409
    code = "IllegalTransition"
    default_message = "Transition not allowed from the current contract state."


class DisputeAlreadyResolved(EscrowError):
    status_code = 409
    code = "DisputeAlreadyResolved"
    default_message = "Dispute already resolved."


class AlreadyReleased(EscrowError):
    status_code = 409
    code = "AlreadyReleased"
    default_message = "Escrow funds for this contract were already released."


class IdempotencyConflict(EscrowError):
    status_code = 409
    code = "IdempotencyConflict"
    default_message = "Idempotency-Key reuse with different payload is not allowed."


class ContractClosed(EscrowError):
    status_code = 410
    code = "ContractClosed"
    default_message = "Contract is closed; no further transitions are permitted."


class ConcurrencyConflict(EscrowError):
    """Raised when a unit of work keeps losing optimistic-lock races."""

    status_code = 409
    code = "ConcurrencyConflict"
    default_message = "Concurrent update conflict; retry the request."
