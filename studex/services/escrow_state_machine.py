# studex/services/escrow_state_machine.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from studex.core.errors import (
    ContractClosed,
    ContractNotFound,
    Forbidden,
    IllegalTransition,
    InvalidContract,
)
from studex.core.escrow_graph import rule_for
from studex.db.unit_of_work import run_in_transaction
from studex.models.contract_event import ContractEvent
from studex.models.enums import (
    TERMINAL_STATUSES,
    ContractEventType,
    ContractStatus,
    MovementReason,
    NotificationType,
    Party,
)
from studex.models.escrow_contract import EscrowContract
from studex.policies.rbac import Principal, require_party_capability, seat_on_contract
from studex.services.idempotency_service import IdempotencyClaim
from studex.services.ledger_service import MAX_MINOR_UNITS, LedgerService
from studex.services.notification_service import EscrowNotification, NotificationEmitter

logger = logging.getLogger(__name__)

# effect(contract, seat) -> extra details recorded on the contract event
TransitionEffect = Callable[[EscrowContract, Party], Optional[Dict[str, Any]]]


def _now():
    return datetime.now(timezone.utc)


class EscrowStateMachine:
    """
    Owns the lifecycle of escrow contracts.

    Responsibilities:
    - Validate new contracts and fund them through a ledger hold
    - Enforce the transition graph (studex.core.escrow_graph)
    - Enforce actor permissions per event
    - Append a ContractEvent per transition, in the same transaction
    - Emit notifications after commit
    """

    def __init__(
        self,
        ledger: Optional[LedgerService] = None,
        emitter: Optional[NotificationEmitter] = None,
    ):
        self.ledger = ledger or LedgerService()
        self.emitter = emitter or NotificationEmitter()

    # ─────────────────────────────────────────────
    # INTERNAL READ HELPERS
    # ─────────────────────────────────────────────

    def _get_contract_for_update(self, db: Session, contract_id: uuid.UUID) -> EscrowContract:
        contract = db.execute(
            select(EscrowContract)
            .where(EscrowContract.id == contract_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not contract:
            raise ContractNotFound()
        return contract

    # ─────────────────────────────────────────────
    # INVARIANTS
    # ─────────────────────────────────────────────

    @staticmethod
    def validate_new_contract(*, client_id: str, freelancer_id: str, amount: Any, job_title: str) -> None:
        errors: Dict[str, str] = {}
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            errors["amount"] = "Amount must be a positive integer (minor units)."
        elif amount > MAX_MINOR_UNITS:
            errors["amount"] = f"Amount must not exceed {MAX_MINOR_UNITS}."
        if not freelancer_id or not freelancer_id.strip():
            errors["freelancerId"] = "Freelancer id is required."
        elif client_id.strip() == freelancer_id.strip():
            errors["freelancerId"] = "Client and freelancer must be different users."
        if not job_title or not job_title.strip():
            errors["jobTitle"] = "Job title is required."
        if errors:
            raise InvalidContract("Invalid contract.", errors=errors)

    @staticmethod
    def authorize(contract: EscrowContract, principal: Principal, event: ContractEventType) -> Party:
        """
        Check order:
          party → not terminal → actor allowed for event → state allows event
        Returns the seat the principal acts from.
        """
        seat = seat_on_contract(
            principal,
            client_id=contract.client_id,
            freelancer_id=contract.freelancer_id,
        )
        if seat is None:
            raise Forbidden("Actor is not a party to this contract.")

        status = ContractStatus(contract.status)
        if status in TERMINAL_STATUSES:
            raise ContractClosed(f"Contract is {status.value}; no further transitions are permitted.")

        rule = rule_for(event)
        if seat not in rule.actors:
            raise Forbidden(f"{seat.value} may not perform {event.value}.")

        if status not in rule.sources:
            raise IllegalTransition(f"Cannot {event.value} while contract is {status.value}.")

        return seat

    # ─────────────────────────────────────────────
    # TRANSITION CORE
    # ─────────────────────────────────────────────

    def _record(
        self,
        db: Session,
        *,
        contract: EscrowContract,
        event: ContractEventType,
        from_status: Optional[ContractStatus],
        actor: Principal,
        seat: Party,
        request_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        target = rule_for(event).target
        contract.status = target.value
        contract.status_changed_at = _now()

        db.add(ContractEvent(
            contract_id=contract.id,
            event_type=event.value,
            from_status=from_status.value if from_status else None,
            to_status=target.value,
            actor_id=actor.user_id,
            actor_role=seat.value,
            request_id=request_id,
            payload_json=details or {},
        ))
        db.flush()

        logger.info(
            "[escrow] contract=%s %s %s -> %s by %s(%s)",
            contract.id,
            event.value,
            from_status.value if from_status else None,
            target.value,
            actor.user_id,
            seat.value,
        )

    def apply_transition(
        self,
        db: Session,
        *,
        contract_id: uuid.UUID,
        principal: Principal,
        event: ContractEventType,
        request_id: Optional[str] = None,
        effect: Optional[TransitionEffect] = None,
    ) -> EscrowContract:
        """
        Lock, authorize, run the side effect, move the status. Does not commit:
        callers run this inside run_in_transaction.
        """
        contract = self._get_contract_for_update(db, contract_id)
        seat = self.authorize(contract, principal, event)
        from_status = ContractStatus(contract.status)

        details = effect(contract, seat) if effect else None

        self._record(
            db,
            contract=contract,
            event=event,
            from_status=from_status,
            actor=principal,
            seat=seat,
            request_id=request_id,
            details=details,
        )
        return contract

    def transition(
        self,
        db: Session,
        *,
        contract_id: uuid.UUID,
        principal: Principal,
        event: ContractEventType,
        request_id: Optional[str] = None,
        effect: Optional[TransitionEffect] = None,
    ) -> EscrowContract:
        return run_in_transaction(
            db,
            lambda: self.apply_transition(
                db,
                contract_id=contract_id,
                principal=principal,
                event=event,
                request_id=request_id,
                effect=effect,
            ),
            label=event.value,
        )

    def notify(
        self,
        db: Session,
        contract: EscrowContract,
        kind: NotificationType,
        recipients,
        **extra: Any,
    ) -> None:
        payload = {
            "jobTitle": contract.job_title,
            "amount": contract.amount,
            "status": contract.status,
            **extra,
        }
        self.emitter.emit(
            db,
            EscrowNotification(
                type=kind.value,
                contract_id=contract.id,
                recipient_ids=tuple(recipients),
                payload=payload,
            ),
        )

    # ─────────────────────────────────────────────
    # OPERATIONS
    # ─────────────────────────────────────────────

    def create_contract(
        self,
        db: Session,
        *,
        principal: Principal,
        freelancer_id: str,
        amount: int,
        job_title: str,
        job_ref: Optional[str] = None,
        request_id: Optional[str] = None,
        idempotency: Optional[IdempotencyClaim] = None,
    ) -> EscrowContract:
        """
        created → secured in one unit: the hold and the contract row commit
        together, or InsufficientFunds leaves nothing behind.

        With an idempotency claim the key row is written in that same unit,
        before the hold. A retry that lost the race re-runs the unit, finds
        the committed key and raises IdempotentReplay instead of holding again.
        """
        require_party_capability(principal, Party.CLIENT)
        self.validate_new_contract(
            client_id=principal.user_id,
            freelancer_id=freelancer_id,
            amount=amount,
            job_title=job_title,
        )

        def work() -> EscrowContract:
            if idempotency is not None:
                idempotency.claim(db)
            contract = EscrowContract(
                id=uuid.uuid4(),
                client_id=principal.user_id,
                freelancer_id=freelancer_id.strip(),
                job_ref=job_ref,
                job_title=job_title.strip(),
                amount=amount,
                status=ContractStatus.created.value,
            )
            self.ledger.hold(db, user_id=contract.client_id, amount=amount, contract_id=contract.id)
            db.add(contract)
            db.flush()
            self._record(
                db,
                contract=contract,
                event=ContractEventType.CREATE_CONTRACT,
                from_status=ContractStatus.created,
                actor=principal,
                seat=Party.CLIENT,
                request_id=request_id,
                details={"amount": amount, "jobRef": job_ref},
            )
            if idempotency is not None:
                idempotency.complete(db, contract)
            return contract

        contract = run_in_transaction(db, work, label="createContract")
        self.notify(db, contract, NotificationType.CONTRACT_SECURED, [contract.freelancer_id])
        return contract

    def start_work(
        self, db: Session, *, contract_id: uuid.UUID, principal: Principal, request_id: Optional[str] = None
    ) -> EscrowContract:
        contract = self.transition(
            db,
            contract_id=contract_id,
            principal=principal,
            event=ContractEventType.START_WORK,
            request_id=request_id,
        )
        self.notify(db, contract, NotificationType.WORK_STARTED, [contract.client_id])
        return contract

    def submit_work(
        self, db: Session, *, contract_id: uuid.UUID, principal: Principal, request_id: Optional[str] = None
    ) -> EscrowContract:
        contract = self.transition(
            db,
            contract_id=contract_id,
            principal=principal,
            event=ContractEventType.SUBMIT_WORK,
            request_id=request_id,
        )
        self.notify(db, contract, NotificationType.WORK_SUBMITTED, [contract.client_id])
        return contract

    def confirm_completion(
        self, db: Session, *, contract_id: uuid.UUID, principal: Principal, request_id: Optional[str] = None
    ) -> EscrowContract:
        def release_to_freelancer(contract: EscrowContract, seat: Party) -> Dict[str, Any]:
            movement = self.ledger.release(
                db,
                contract_id=contract.id,
                to_user_id=contract.freelancer_id,
                amount=contract.amount,
                reason=MovementReason.ESCROW_RELEASE,
            )
            return {"releasedTo": contract.freelancer_id, "amount": contract.amount, "movementId": str(movement.id)}

        contract = self.transition(
            db,
            contract_id=contract_id,
            principal=principal,
            event=ContractEventType.CONFIRM_COMPLETION,
            request_id=request_id,
            effect=release_to_freelancer,
        )
        self.notify(db, contract, NotificationType.PAYMENT_RELEASED, [contract.freelancer_id])
        return contract
