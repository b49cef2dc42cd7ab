from __future__ import annotations

import hashlib
import json
import uuid
from typing import Any, Dict, Iterable, Optional, Protocol

# prev_hash of the first movement on every account
GENESIS_HASH = "0" * 64


def canonical_dumps(obj: Dict[str, Any]) -> str:
    # Deterministic JSON string: sorted keys, no whitespace
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def movement_payload(
    *,
    account_id: uuid.UUID,
    seq: int,
    amount: int,
    balance_after: int,
    reason: str,
    contract_id: Optional[uuid.UUID],
) -> Dict[str, Any]:
    """The fields of a ledger movement that its entry hash commits to."""
    return {
        "account_id": str(account_id),
        "seq": seq,
        "amount": amount,
        "balance_after": balance_after,
        "reason": reason,
        "contract_id": str(contract_id) if contract_id else None,
    }


def chain_hash(prev_hash: str, payload: Dict[str, Any]) -> str:
    return sha256_hex(prev_hash + canonical_dumps(payload))


class ChainedMovement(Protocol):
    account_id: uuid.UUID
    seq: int
    amount: int
    balance_after: int
    reason: str
    contract_id: Optional[uuid.UUID]
    prev_hash: str
    entry_hash: str


def verify_movements(movements: Iterable[ChainedMovement]) -> Optional[int]:
    """
    Walks one account's movements in seq order.

    Returns the final running balance if every link, seq and balance_after
    checks out, else None.
    """
    prev = GENESIS_HASH
    running = 0
    for expected_seq, m in enumerate(movements, start=1):
        if m.seq != expected_seq or m.prev_hash != prev:
            return None
        running += m.amount
        if running != m.balance_after:
            return None
        payload = movement_payload(
            account_id=m.account_id,
            seq=m.seq,
            amount=m.amount,
            balance_after=m.balance_after,
            reason=m.reason,
            contract_id=m.contract_id,
        )
        if m.entry_hash != chain_hash(prev, payload):
            return None
        prev = m.entry_hash
    return running


def request_fingerprint(payload: Dict[str, Any]) -> str:
    # Idempotency-Key replays must carry the same body
    return sha256_hex(canonical_dumps(payload))
