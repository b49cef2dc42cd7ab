from __future__ import annotations

import uuid
from typing import Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from studex.core.errors import ContractNotFound, Forbidden
from studex.core.pagination import Page, normalize_page
from studex.models.contract_event import ContractEvent
from studex.models.enums import HELD_STATUSES, ContractStatus, Party
from studex.models.escrow_contract import EscrowContract
from studex.policies.rbac import Principal, require_admin, seat_on_contract


class ContractRegistry:
    """
    Read side of escrow contracts: lookup by id, listings by party and by
    status. Ordering is newest first with the id as a stable tie-break.
    """

    _ORDER = (EscrowContract.created_at.desc(), EscrowContract.id.desc())

    def _page(self, db: Session, where, page: Optional[int], page_size: Optional[int]) -> Page[EscrowContract]:
        p, size, offset = normalize_page(page, page_size)
        total = db.execute(select(func.count(EscrowContract.id)).where(where)).scalar_one()
        rows = db.execute(
            select(EscrowContract).where(where).order_by(*self._ORDER).offset(offset).limit(size)
        ).scalars().all()
        return Page(items=list(rows), page=p, page_size=size, total=int(total))

    def find_by_id(self, db: Session, contract_id: uuid.UUID) -> Optional[EscrowContract]:
        return db.execute(
            select(EscrowContract).where(EscrowContract.id == contract_id)
        ).scalar_one_or_none()

    def get_visible(self, db: Session, *, contract_id: uuid.UUID, principal: Principal) -> EscrowContract:
        """Parties and admins only."""
        contract = self.find_by_id(db, contract_id)
        if not contract:
            raise ContractNotFound()
        seat = seat_on_contract(principal, client_id=contract.client_id, freelancer_id=contract.freelancer_id)
        if seat is None:
            raise Forbidden("Actor is not a party to this contract.")
        return contract

    def list_by_user(
        self,
        db: Session,
        *,
        user_id: str,
        role: Party,
        status: Optional[ContractStatus] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Page[EscrowContract]:
        if role == Party.CLIENT:
            where = EscrowContract.client_id == user_id
        elif role == Party.FREELANCER:
            where = EscrowContract.freelancer_id == user_id
        else:
            raise Forbidden("Listing by user requires role client or freelancer.")

        if status is not None:
            where = and_(where, EscrowContract.status == status.value)
        return self._page(db, where, page, page_size)

    def list_by_status(
        self,
        db: Session,
        *,
        status: ContractStatus,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Page[EscrowContract]:
        return self._page(db, EscrowContract.status == status.value, page, page_size)

    def list_by_status_for(
        self,
        db: Session,
        *,
        principal: Principal,
        status: ContractStatus,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> Page[EscrowContract]:
        require_admin(principal)
        return self.list_by_status(db, status=status, page=page, page_size=page_size)

    def list_events(self, db: Session, contract_id: uuid.UUID) -> List[ContractEvent]:
        return list(
            db.execute(
                select(ContractEvent)
                .where(ContractEvent.contract_id == contract_id)
                .order_by(ContractEvent.created_at.asc(), ContractEvent.id.asc())
            ).scalars().all()
        )

    def escrow_summary(self, db: Session, *, user_id: str, role: Party) -> Dict[str, int]:
        """
        Wallet escrow tab: amount still held, and counts per bucket.
        """
        column = EscrowContract.client_id if role == Party.CLIENT else EscrowContract.freelancer_id
        rows = db.execute(
            select(EscrowContract.status, func.count(EscrowContract.id), func.coalesce(func.sum(EscrowContract.amount), 0))
            .where(column == user_id)
            .group_by(EscrowContract.status)
        ).all()

        held_values = {s.value for s in HELD_STATUSES}
        summary = {"totalHeld": 0, "activeCount": 0, "releasedCount": 0, "disputedCount": 0, "resolvedCount": 0}
        for status, count, total in rows:
            if status in held_values:
                summary["totalHeld"] += int(total)
            if status == ContractStatus.disputed.value:
                summary["disputedCount"] += int(count)
            elif status in held_values:
                summary["activeCount"] += int(count)
            if status == ContractStatus.released.value:
                summary["releasedCount"] += int(count)
            if status == ContractStatus.resolved.value:
                summary["resolvedCount"] += int(count)
        return summary
