"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Identity / access
  2xxx: Ledger / wallet
  3xxx: Collaboration flow
  4xxx: Settlement / escrow
  5xxx: Payment intake
  9xxx: System

Guard violations and duplicates are 4xx (recovered locally, returned to the
caller). Storage failures, invariant breaches and missing configuration are 5xx.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Identity / access ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class ForbiddenError(AppError):
    def __init__(self, detail: str = "Not a participant of this collaboration") -> None:
        super().__init__(1002, detail, 403)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Administrator role required", 403)


# --- 2xxx: Ledger / wallet ---

class LedgerEntryNotFoundError(AppError):
    def __init__(self, entry_id: int) -> None:
        super().__init__(2001, f"Ledger entry not found: {entry_id}", 404)


class AlreadyConfirmedError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2002, f"Already confirmed: {detail}", 409)


class IdempotencyConflictError(AppError):
    def __init__(self, idempotency_key: str) -> None:
        super().__init__(
            2003,
            f"Idempotency key {idempotency_key} was already used for a different operation",
            409,
        )


# --- 3xxx: Collaboration flow ---

class CollaborationNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(3001, f"Collaboration not found: {ref}", 404)


class InvalidStateTransitionError(AppError):
    def __init__(self, action: str, state: str) -> None:
        super().__init__(3002, f"Action {action} is not allowed in state {state}", 409)


class NotYourTurnError(AppError):
    def __init__(self, role: str, awaiting: str | None) -> None:
        super().__init__(
            3003,
            f"It is not the {role}'s turn (awaiting: {awaiting or 'nobody'})",
            403,
        )


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3004, f"Invalid amount: {detail}", 422)


# --- 4xxx: Settlement / escrow ---

class SettlementNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(4001, f"Settlement not found: {ref}", 404)


class EscrowOverreleaseError(AppError):
    """Invariant breach. Never absorbed: the transaction is rolled back and the
    event is logged for manual reconciliation."""

    def __init__(self, hold_id: str, requested: int, remaining: int) -> None:
        super().__init__(
            4002,
            f"Escrow over-release on hold {hold_id}: requested {requested}, remaining {remaining}",
            500,
        )


class PartialWriteFailureError(AppError):
    def __init__(self, step: str) -> None:
        super().__init__(4003, f"Settlement open failed while writing {step}", 500)


class EscrowHoldNotFoundError(AppError):
    def __init__(self, hold_id: str) -> None:
        super().__init__(4004, f"Escrow hold not found: {hold_id}", 404)


# --- 5xxx: Payment intake ---

class DuplicatePaymentError(AppError):
    def __init__(self, external_payment_id: str) -> None:
        super().__init__(5001, f"Payment already processed: {external_payment_id}", 409)


class PaymentVerificationError(AppError):
    def __init__(self) -> None:
        super().__init__(5002, "Payment signature verification failed", 400)


class AmountMismatchError(AppError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            5003,
            f"Verified amount {actual} does not match agreed amount {expected}",
            422,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class ConfigurationMissingError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Configuration missing: {detail}", 503)
