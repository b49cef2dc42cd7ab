#studex/services/ledger_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studex.core.errors import AlreadyReleased, InsufficientFunds, InvalidAmount
from studex.core.hashing import GENESIS_HASH, chain_hash, movement_payload, verify_movements
from studex.models.enums import MovementReason
from studex.models.ledger_account import LedgerAccount
from studex.models.ledger_movement import LedgerMovement
from studex.models.ledger_settlement import LedgerSettlement

logger = logging.getLogger(__name__)

# balances and amounts are BIGINT columns
MAX_MINOR_UNITS = 2**63 - 1


@dataclass(frozen=True)
class PayoutLeg:
    user_id: str
    amount: int
    reason: MovementReason


def _require_positive(amount: int) -> None:
    # bool is an int subclass; reject it explicitly
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount()
    if amount > MAX_MINOR_UNITS:
        raise InvalidAmount(errors={"amount": f"Must not exceed {MAX_MINOR_UNITS}."})


class LedgerService:
    """
    Per-user available balances with an append-only, hash-chained movement log.

    Mutating methods never commit: they run inside the caller's unit of work
    (see studex.db.unit_of_work.run_in_transaction) so a hold and the contract
    it funds land together or not at all.
    """

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _get_account(self, db: Session, user_id: str) -> Optional[LedgerAccount]:
        return db.execute(
            select(LedgerAccount).where(LedgerAccount.user_id == user_id)
        ).scalar_one_or_none()

    def _get_account_for_update(self, db: Session, user_id: str) -> LedgerAccount:
        """
        Lock the account row (FOR UPDATE) to serialize balance changes.
        Accounts are created lazily on first use.
        """
        account = db.execute(
            select(LedgerAccount)
            .where(LedgerAccount.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if account is None:
            account = LedgerAccount(user_id=user_id, balance=0, last_seq=0)
            db.add(account)
            # a concurrent creator surfaces here as IntegrityError (retried)
            db.flush()

        return account

    def _last_hash(self, db: Session, account: LedgerAccount) -> str:
        if account.last_seq == 0:
            return GENESIS_HASH
        last = db.execute(
            select(LedgerMovement.entry_hash).where(
                LedgerMovement.account_id == account.id,
                LedgerMovement.seq == account.last_seq,
            )
        ).scalar_one_or_none()
        return last or GENESIS_HASH

    def _apply(
        self,
        db: Session,
        account: LedgerAccount,
        *,
        delta: int,
        reason: MovementReason,
        contract_id: Optional[uuid.UUID] = None,
    ) -> LedgerMovement:
        """
        The single place a balance changes: balance update + movement row.
        """
        new_balance = account.balance + delta
        if new_balance < 0:
            raise InsufficientFunds(
                f"Available balance {account.balance} is below {-delta}."
            )
        if new_balance > MAX_MINOR_UNITS:
            raise InvalidAmount(
                "Balance would exceed the largest representable amount.",
                errors={"amount": f"Balance after this movement must not exceed {MAX_MINOR_UNITS}."},
            )

        seq = account.last_seq + 1
        prev_hash = self._last_hash(db, account)
        payload = movement_payload(
            account_id=account.id,
            seq=seq,
            amount=delta,
            balance_after=new_balance,
            reason=reason.value,
            contract_id=contract_id,
        )

        movement = LedgerMovement(
            account_id=account.id,
            seq=seq,
            amount=delta,
            balance_after=new_balance,
            reason=reason.value,
            contract_id=contract_id,
            prev_hash=prev_hash,
            entry_hash=chain_hash(prev_hash, payload),
        )

        account.balance = new_balance
        account.last_seq = seq
        db.add(movement)
        db.flush()

        logger.info(
            "[ledger] %s account=%s delta=%d balance=%d contract=%s",
            reason.value, account.user_id, delta, new_balance, contract_id,
        )
        return movement

    # ─────────────────────────────────────────────
    # PUBLIC API (ESCROW)
    # ─────────────────────────────────────────────

    def hold(self, db: Session, *, user_id: str, amount: int, contract_id: uuid.UUID) -> LedgerMovement:
        """
        Check-and-decrement the payer's balance into a contract-scoped hold.
        Raises InsufficientFunds without touching the balance.
        """
        _require_positive(amount)
        account = self._get_account_for_update(db, user_id)
        return self._apply(
            db,
            account,
            delta=-amount,
            reason=MovementReason.ESCROW_HOLD,
            contract_id=contract_id,
        )

    def is_settled(self, db: Session, contract_id: uuid.UUID) -> bool:
        return db.execute(
            select(LedgerSettlement.id).where(LedgerSettlement.contract_id == contract_id)
        ).first() is not None

    def settle(
        self,
        db: Session,
        *,
        contract_id: uuid.UUID,
        legs: Sequence[PayoutLeg],
        kind: str,
    ) -> List[LedgerMovement]:
        """
        Pay a contract's held funds out to one or more accounts.
        Exactly once per contract: a replay raises AlreadyReleased.
        """
        if not legs:
            raise InvalidAmount("A settlement needs at least one payout leg.")
        for leg in legs:
            _require_positive(leg.amount)
            if leg.reason not in (MovementReason.ESCROW_RELEASE, MovementReason.ESCROW_REFUND):
                raise InvalidAmount(f"Reason {leg.reason.value} cannot settle escrow.")

        if self.is_settled(db, contract_id):
            raise AlreadyReleased()

        # unique contract_id: a concurrent settler fails at flush and re-runs
        db.add(LedgerSettlement(
            contract_id=contract_id,
            kind=kind,
            legs_json={
                "legs": [
                    {"user_id": leg.user_id, "amount": leg.amount, "reason": leg.reason.value}
                    for leg in legs
                ]
            },
        ))
        db.flush()

        # lock accounts in a stable order
        movements = []
        for leg in sorted(legs, key=lambda lg: lg.user_id):
            account = self._get_account_for_update(db, leg.user_id)
            movements.append(
                self._apply(db, account, delta=leg.amount, reason=leg.reason, contract_id=contract_id)
            )
        return movements

    def release(
        self,
        db: Session,
        *,
        contract_id: uuid.UUID,
        to_user_id: str,
        amount: int,
        reason: MovementReason = MovementReason.ESCROW_RELEASE,
    ) -> LedgerMovement:
        """
        Single-recipient settlement: ESCROW_RELEASE to the payee or
        ESCROW_REFUND back to the payer.
        """
        kind = "refund" if reason == MovementReason.ESCROW_REFUND else "release"
        return self.settle(
            db,
            contract_id=contract_id,
            legs=[PayoutLeg(user_id=to_user_id, amount=amount, reason=reason)],
            kind=kind,
        )[0]

    # ─────────────────────────────────────────────
    # PUBLIC API (WALLET)
    # ─────────────────────────────────────────────

    def deposit(self, db: Session, *, user_id: str, amount: int) -> LedgerMovement:
        _require_positive(amount)
        account = self._get_account_for_update(db, user_id)
        return self._apply(db, account, delta=amount, reason=MovementReason.DEPOSIT)

    def withdraw(self, db: Session, *, user_id: str, amount: int) -> LedgerMovement:
        _require_positive(amount)
        account = self._get_account_for_update(db, user_id)
        return self._apply(db, account, delta=-amount, reason=MovementReason.WITHDRAWAL)

    # ─────────────────────────────────────────────
    # READ-ONLY HELPERS
    # ─────────────────────────────────────────────

    def balance_of(self, db: Session, user_id: str) -> int:
        account = self._get_account(db, user_id)
        return account.balance if account else 0

    def count_movements(self, db: Session, user_id: str) -> int:
        account = self._get_account(db, user_id)
        if not account:
            return 0
        return db.execute(
            select(func.count(LedgerMovement.id)).where(LedgerMovement.account_id == account.id)
        ).scalar_one()

    def list_movements(
        self,
        db: Session,
        user_id: str,
        *,
        offset: int = 0,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> List[LedgerMovement]:
        account = self._get_account(db, user_id)
        if not account:
            return []
        order = LedgerMovement.seq.desc() if newest_first else LedgerMovement.seq.asc()
        stmt = (
            select(LedgerMovement)
            .where(LedgerMovement.account_id == account.id)
            .order_by(order)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.execute(stmt).scalars().all())

    def list_contract_movements(self, db: Session, contract_id: uuid.UUID) -> List[LedgerMovement]:
        return list(
            db.execute(
                select(LedgerMovement)
                .where(LedgerMovement.contract_id == contract_id)
                .order_by(LedgerMovement.created_at.asc(), LedgerMovement.seq.asc())
            ).scalars().all()
        )

    def verify_chain(self, db: Session, user_id: str) -> bool:
        """
        Verifies the account's hash chain and that the movements sum to the balance.
        Used by auditors.
        """
        account = self._get_account(db, user_id)
        if not account:
            return True

        movements = self.list_movements(db, user_id, newest_first=False)
        running = verify_movements(movements)
        if running is None:
            logger.warning("[ledger] chain broken account=%s", user_id)
            return False
        return running == account.balance and len(movements) == account.last_seq
