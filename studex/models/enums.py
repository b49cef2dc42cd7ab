#studex/models/enums.py
from __future__ import annotations
from enum import Enum


class ActorRole(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    HYBRID = "hybrid"
    ADMIN = "admin"


class Party(str, Enum):
    # seat an actor occupies on a specific contract
    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"


class ContractStatus(str, Enum):
    created = "created"
    secured = "secured"
    work_in_progress = "work_in_progress"
    completed = "completed"
    released = "released"
    disputed = "disputed"
    resolved = "resolved"


TERMINAL_STATUSES = frozenset({ContractStatus.released, ContractStatus.resolved})

# funds still sitting in escrow for these
HELD_STATUSES = frozenset({
    ContractStatus.secured,
    ContractStatus.work_in_progress,
    ContractStatus.completed,
    ContractStatus.disputed,
})


class ContractEventType(str, Enum):
    CREATE_CONTRACT = "createContract"
    START_WORK = "startWork"
    SUBMIT_WORK = "submitWork"
    CONFIRM_COMPLETION = "confirmCompletion"
    RAISE_DISPUTE = "raiseDispute"
    RESOLVE_DISPUTE = "resolveDispute"


class MovementReason(str, Enum):
    ESCROW_HOLD = "ESCROW_HOLD"
    ESCROW_RELEASE = "ESCROW_RELEASE"
    ESCROW_REFUND = "ESCROW_REFUND"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class DisputeStatus(str, Enum):
    open = "open"
    resolved = "resolved"


class DisputeResolution(str, Enum):
    favor_client = "favor_client"
    favor_freelancer = "favor_freelancer"
    split = "split"


class NotificationType(str, Enum):
    CONTRACT_SECURED = "ContractSecured"
    WORK_STARTED = "WorkStarted"
    WORK_SUBMITTED = "WorkSubmitted"
    PAYMENT_RELEASED = "PaymentReleased"
    DISPUTE_RAISED = "DisputeRaised"
    DISPUTE_RESOLVED = "DisputeResolved"
