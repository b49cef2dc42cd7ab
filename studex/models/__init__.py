# Importing this package registers every model on Base.metadata.
from studex.models.ledger_account import LedgerAccount
from studex.models.ledger_movement import LedgerMovement
from studex.models.ledger_settlement import LedgerSettlement
from studex.models.escrow_contract import EscrowContract
from studex.models.contract_event import ContractEvent
from studex.models.dispute import Dispute
from studex.models.notification import Notification
from studex.models.idempotency_key import IdempotencyKeyRecord

__all__ = [
    "LedgerAccount",
    "LedgerMovement",
    "LedgerSettlement",
    "EscrowContract",
    "ContractEvent",
    "Dispute",
    "Notification",
    "IdempotencyKeyRecord",
]
