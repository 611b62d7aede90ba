"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class FlowState(str, Enum):
    NEGOTIATING = "negotiating"
    PRICE_AGREED = "price_agreed"
    AWAITING_PAYMENT = "awaiting_payment"
    ADMIN_ADVANCE_PENDING = "admin_advance_pending"
    WORK_IN_PROGRESS = "work_in_progress"
    WORK_SUBMITTED = "work_submitted"
    WORK_APPROVED = "work_approved"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Role(str, Enum):
    """Who acts on a collaboration. SYSTEM is the payment verifier callback."""
    PAYER = "payer"
    PAYEE = "payee"
    ADMIN = "admin"
    SYSTEM = "system"


class ActorKind(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class AdvanceStatus(str, Enum):
    AWAITING_ADMIN = "awaiting_admin"
    CONFIRMED = "confirmed"


class FinalStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class EscrowStatus(str, Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class LedgerDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerStage(str, Enum):
    ADVANCE = "advance"
    FINAL = "final"
    DIRECT_PAYMENT = "direct_payment"
    REFUND = "refund"
    COMMISSION = "commission"


class LedgerStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    # pending placeholders of a refunded settlement
    CANCELLED = "cancelled"
