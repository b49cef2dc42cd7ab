# studex/api/v1/accounts.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studex.api.v1.presenters import movement_to_resp
from studex.core.auth_deps import get_current_principal
from studex.core.pagination import Page, normalize_page
from studex.db.session import get_db
from studex.db.unit_of_work import run_in_transaction
from studex.models.enums import ActorRole, Party
from studex.policies.rbac import Principal, require_party_capability
from studex.schemas.contracts import EscrowSummaryResponse
from studex.schemas.ledger import (
    AmountRequest,
    BalanceMovementResponse,
    BalanceResponse,
    ChainVerifyResponse,
    MovementPage,
)
from studex.services.contract_registry import ContractRegistry
from studex.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts")


@router.get("/me/balance", response_model=BalanceResponse)
def get_my_balance(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return {"userId": principal.user_id, "balance": LedgerService().balance_of(db, principal.user_id)}


@router.post("/me/deposit", response_model=BalanceMovementResponse)
def deposit(
    payload: AmountRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Simulated top-up (no payment gateway behind it).
    """
    svc = LedgerService()
    movement = run_in_transaction(
        db,
        lambda: svc.deposit(db, user_id=principal.user_id, amount=payload.amount),
        label="deposit",
    )
    return {"balance": movement.balance_after, "movement": movement_to_resp(movement)}


@router.post("/me/withdraw", response_model=BalanceMovementResponse)
def withdraw(
    payload: AmountRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = LedgerService()
    movement = run_in_transaction(
        db,
        lambda: svc.withdraw(db, user_id=principal.user_id, amount=payload.amount),
        label="withdraw",
    )
    return {"balance": movement.balance_after, "movement": movement_to_resp(movement)}


@router.get("/me/movements", response_model=MovementPage)
def list_my_movements(
    page: int = Query(default=1, ge=1),
    pageSize: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = LedgerService()
    p, size, offset = normalize_page(page, pageSize)
    rows = svc.list_movements(db, principal.user_id, offset=offset, limit=size)
    result = Page(items=rows, page=p, page_size=size, total=svc.count_movements(db, principal.user_id))
    return {
        "items": [movement_to_resp(m) for m in result.items],
        "page": result.page,
        "pageSize": result.page_size,
        "total": result.total,
        "totalPages": result.total_pages,
    }


@router.get("/me/movements/verify", response_model=ChainVerifyResponse)
def verify_my_movements(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ok = LedgerService().verify_chain(db, principal.user_id)
    logger.info("[accounts/verify] user=%s valid=%s", principal.user_id, ok)
    return {"userId": principal.user_id, "valid": ok}


@router.get("/me/escrow-summary", response_model=EscrowSummaryResponse)
def my_escrow_summary(
    role: Optional[Party] = Query(default=None, description="client | freelancer"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if role is None:
        role = Party.FREELANCER if principal.role == ActorRole.FREELANCER else Party.CLIENT
    require_party_capability(principal, role)
    summary = ContractRegistry().escrow_summary(db, user_id=principal.user_id, role=role)
    return {"role": role.value, **summary}
