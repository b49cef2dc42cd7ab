# studex/services/dispute_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studex.core.errors import (
    DisputeAlreadyResolved,
    DisputeNotFound,
    Forbidden,
    IllegalTransition,
    InvalidResolution,
)
from studex.db.unit_of_work import run_in_transaction
from studex.models.dispute import Dispute
from studex.models.enums import (
    ContractEventType,
    DisputeResolution,
    DisputeStatus,
    MovementReason,
    NotificationType,
    Party,
)
from studex.models.escrow_contract import EscrowContract
from studex.policies.rbac import Principal, require_admin, seat_on_contract
from studex.services.escrow_state_machine import EscrowStateMachine
from studex.services.ledger_service import PayoutLeg

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 2000
DEFAULT_CLIENT_SHARE_PERCENT = 50


def _now():
    return datetime.now(timezone.utc)


def compute_payout(
    contract: EscrowContract,
    resolution: DisputeResolution,
    client_share_percent: Optional[int] = None,
) -> List[PayoutLeg]:
    """
    favor_client      → full ESCROW_REFUND to client
    favor_freelancer  → full ESCROW_RELEASE to freelancer
    split             → client gets floor(amount * pct / 100) as refund,
                        freelancer gets the remainder as release
    Zero-amount legs are dropped; legs always sum to the contract amount.
    """
    amount = contract.amount

    if resolution == DisputeResolution.favor_client:
        return [PayoutLeg(contract.client_id, amount, MovementReason.ESCROW_REFUND)]

    if resolution == DisputeResolution.favor_freelancer:
        return [PayoutLeg(contract.freelancer_id, amount, MovementReason.ESCROW_RELEASE)]

    pct = DEFAULT_CLIENT_SHARE_PERCENT if client_share_percent is None else client_share_percent
    if not 1 <= pct <= 99:
        raise InvalidResolution(
            "clientSharePercent must be between 1 and 99 for a split.",
            errors={"clientSharePercent": "Must be between 1 and 99."},
        )

    client_part = amount * pct // 100
    freelancer_part = amount - client_part

    legs = []
    if client_part > 0:
        legs.append(PayoutLeg(contract.client_id, client_part, MovementReason.ESCROW_REFUND))
    if freelancer_part > 0:
        legs.append(PayoutLeg(contract.freelancer_id, freelancer_part, MovementReason.ESCROW_RELEASE))
    return legs


class DisputeService:
    """
    Freezes a contract under dispute and lets an admin route the held funds.
    """

    def __init__(self, machine: Optional[EscrowStateMachine] = None):
        self.machine = machine or EscrowStateMachine()

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def _get_for_update(self, db: Session, dispute_id: uuid.UUID) -> Dispute:
        row = db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not row:
            raise DisputeNotFound()
        return row

    def _open_dispute_for(self, db: Session, contract_id: uuid.UUID) -> Optional[Dispute]:
        return db.execute(
            select(Dispute).where(
                Dispute.contract_id == contract_id,
                Dispute.status == DisputeStatus.open.value,
            )
        ).scalar_one_or_none()

    def get(self, db: Session, *, dispute_id: uuid.UUID, principal: Principal) -> Dispute:
        row = db.execute(select(Dispute).where(Dispute.id == dispute_id)).scalar_one_or_none()
        if not row:
            raise DisputeNotFound()
        contract = db.get(EscrowContract, row.contract_id)
        seat = seat_on_contract(principal, client_id=contract.client_id, freelancer_id=contract.freelancer_id)
        if seat is None:
            raise Forbidden("Actor is not a party to this dispute.")
        return row

    def list_open(self, db: Session, *, principal: Principal, offset: int, limit: int) -> Tuple[List[Dispute], int]:
        require_admin(principal)
        where = Dispute.status == DisputeStatus.open.value
        total = db.execute(select(func.count(Dispute.id)).where(where)).scalar_one()
        rows = db.execute(
            select(Dispute)
            .where(where)
            .order_by(Dispute.created_at.desc(), Dispute.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), int(total)

    # ─────────────────────────────────────────────
    # MUTATIONS
    # ─────────────────────────────────────────────

    def raise_dispute(
        self,
        db: Session,
        *,
        contract_id: uuid.UUID,
        principal: Principal,
        reason: str,
        request_id: Optional[str] = None,
    ) -> Tuple[EscrowContract, Dispute]:
        """
        Rules:
        - contract in work_in_progress or completed
        - actor is the client or the freelancer
        - no open dispute already
        """
        reason = (reason or "").strip()
        if not reason or len(reason) > MAX_REASON_LENGTH:
            raise InvalidResolution(
                "Dispute reason is required.",
                errors={"reason": f"Must be 1..{MAX_REASON_LENGTH} characters."},
            )

        created: Dict[str, Dispute] = {}

        def open_dispute(contract: EscrowContract, seat: Party) -> Dict[str, Any]:
            if self._open_dispute_for(db, contract.id):
                raise IllegalTransition("Contract already has an open dispute.")
            dispute = Dispute(
                id=uuid.uuid4(),
                contract_id=contract.id,
                raised_by=principal.user_id,
                raised_by_party=seat.value,
                reason=reason,
                status=DisputeStatus.open.value,
            )
            db.add(dispute)
            contract.dispute_id = dispute.id
            created["dispute"] = dispute
            return {"disputeId": str(dispute.id), "raisedBy": seat.value}

        contract = self.machine.transition(
            db,
            contract_id=contract_id,
            principal=principal,
            event=ContractEventType.RAISE_DISPUTE,
            request_id=request_id,
            effect=open_dispute,
        )
        dispute = created["dispute"]

        logger.info("[dispute] raised dispute=%s contract=%s by=%s", dispute.id, contract.id, principal.user_id)
        self.machine.notify(
            db,
            contract,
            NotificationType.DISPUTE_RAISED,
            [contract.client_id, contract.freelancer_id],
            disputeId=str(dispute.id),
            raisedBy=principal.user_id,
        )
        return contract, dispute

    def resolve(
        self,
        db: Session,
        *,
        dispute_id: uuid.UUID,
        principal: Principal,
        resolution: DisputeResolution,
        client_share_percent: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> Tuple[EscrowContract, Dispute]:
        """
        check dispute open → pay out → mark resolved → contract resolved,
        all in one transaction.
        """
        require_admin(principal)
        if resolution != DisputeResolution.split and client_share_percent is not None:
            raise InvalidResolution(
                "clientSharePercent applies only to split resolutions.",
                errors={"clientSharePercent": "Only allowed with resolution=split."},
            )

        def work() -> Tuple[EscrowContract, Dispute]:
            dispute = self._get_for_update(db, dispute_id)
            if dispute.status != DisputeStatus.open.value:
                raise DisputeAlreadyResolved()

            def pay_out(contract: EscrowContract, seat: Party) -> Dict[str, Any]:
                legs = compute_payout(contract, resolution, client_share_percent)
                movements = self.machine.ledger.settle(
                    db,
                    contract_id=contract.id,
                    legs=legs,
                    kind=resolution.value,
                )
                return {
                    "disputeId": str(dispute.id),
                    "resolution": resolution.value,
                    "payouts": [
                        {"userId": leg.user_id, "amount": leg.amount, "reason": leg.reason.value}
                        for leg in legs
                    ],
                    "movementIds": [str(m.id) for m in movements],
                }

            contract = self.machine.apply_transition(
                db,
                contract_id=dispute.contract_id,
                principal=principal,
                event=ContractEventType.RESOLVE_DISPUTE,
                request_id=request_id,
                effect=pay_out,
            )

            dispute.status = DisputeStatus.resolved.value
            dispute.resolution = resolution.value
            dispute.client_share_percent = (
                (DEFAULT_CLIENT_SHARE_PERCENT if client_share_percent is None else client_share_percent)
                if resolution == DisputeResolution.split
                else None
            )
            dispute.resolved_by = principal.user_id
            dispute.resolved_at = _now()
            db.flush()
            return contract, dispute

        contract, dispute = run_in_transaction(db, work, label="resolveDispute")

        logger.info(
            "[dispute] resolved dispute=%s contract=%s resolution=%s by=%s",
            dispute.id, contract.id, dispute.resolution, principal.user_id,
        )
        self.machine.notify(
            db,
            contract,
            NotificationType.DISPUTE_RESOLVED,
            [contract.client_id, contract.freelancer_id],
            disputeId=str(dispute.id),
            resolution=dispute.resolution,
        )
        return contract, dispute
