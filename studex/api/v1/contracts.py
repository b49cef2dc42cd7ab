# studex/api/v1/contracts.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from studex.api.v1.presenters import (
    contract_to_resp,
    dispute_to_resp,
    event_to_resp,
    movement_to_resp,
    page_to_resp,
)
from studex.core.auth_deps import get_current_principal
from studex.core.deps_idempotency import IdempotentRequest, idempotency_guard
from studex.core.errors import InvalidIdentifier, InvalidRequest
from studex.db.session import get_db
from studex.models.enums import ActorRole, ContractStatus, Party
from studex.policies.rbac import Principal, require_party_capability
from studex.schemas.contracts import (
    ContractEventList,
    ContractPage,
    ContractResponse,
    CreateContractRequest,
)
from studex.schemas.disputes import ContractDisputeResponse, RaiseDisputeRequest
from studex.schemas.ledger import ContractMovementList
from studex.services.contract_registry import ContractRegistry
from studex.services.dispute_service import DisputeService
from studex.services.escrow_state_machine import EscrowStateMachine
from studex.services.idempotency_service import IdempotentReplay
from studex.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts")


def parse_uuid(raw: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise InvalidIdentifier(f"{field} must be a UUID.", errors={field: "Must be a UUID."})


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


# ---------------------------------------------------------------------
# POST /contracts  (client hires, funds go into escrow)
# ---------------------------------------------------------------------


@router.post("", status_code=201, response_model=ContractResponse)
def create_contract(
    request: Request,
    payload: CreateContractRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    idem: IdempotentRequest = Depends(idempotency_guard),
):
    if idem.replay is not None:
        logger.info("[contracts] idempotent replay key=%s user=%s", idem.scope.idem_key, principal.user_id)
        return JSONResponse(status_code=idem.replay.status_code, content=idem.replay.body)

    claim = idem.claim(contract_to_resp, 201)
    try:
        contract = EscrowStateMachine().create_contract(
            db,
            principal=principal,
            freelancer_id=payload.freelancerId,
            amount=payload.amount,
            job_title=payload.jobTitle,
            job_ref=payload.jobRef,
            request_id=_request_id(request),
            idempotency=claim,
        )
    except IdempotentReplay as exc:
        # a concurrent retry with the same key committed first
        logger.info("[contracts] idempotent replay key=%s user=%s", idem.scope.idem_key, principal.user_id)
        return JSONResponse(status_code=exc.replay.status_code, content=exc.replay.body)

    # the stored body, so a later replay is byte-for-byte the same
    return claim.response if claim is not None else contract_to_resp(contract)


# ---------------------------------------------------------------------
# GET /contracts  (wallet escrow tab)
# ---------------------------------------------------------------------


@router.get("", response_model=ContractPage)
def list_my_contracts(
    role: Optional[Party] = Query(default=None, description="client | freelancer"),
    status: Optional[ContractStatus] = Query(default=None),
    page: int = Query(default=1, ge=1),
    pageSize: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if role is None:
        role = Party.FREELANCER if principal.role == ActorRole.FREELANCER else Party.CLIENT
    if role == Party.ADMIN:
        raise InvalidRequest(errors={"role": "Must be client or freelancer."})
    require_party_capability(principal, role)

    result = ContractRegistry().list_by_user(
        db,
        user_id=principal.user_id,
        role=role,
        status=status,
        page=page,
        page_size=pageSize,
    )
    return page_to_resp(result, contract_to_resp)


@router.get("/{contractId}", response_model=ContractResponse)
def get_contract(
    contractId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    cid = parse_uuid(contractId, "contractId")
    row = ContractRegistry().get_visible(db, contract_id=cid, principal=principal)
    return contract_to_resp(row)


@router.get("/{contractId}/events", response_model=ContractEventList)
def list_contract_events(
    contractId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    cid = parse_uuid(contractId, "contractId")
    registry = ContractRegistry()
    registry.get_visible(db, contract_id=cid, principal=principal)
    return {
        "contractId": contractId,
        "events": [event_to_resp(e) for e in registry.list_events(db, cid)],
    }


@router.get("/{contractId}/movements", response_model=ContractMovementList)
def list_contract_movements(
    contractId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Money trail of one contract: the hold and its payout legs.
    """
    cid = parse_uuid(contractId, "contractId")
    ContractRegistry().get_visible(db, contract_id=cid, principal=principal)
    rows = LedgerService().list_contract_movements(db, cid)
    return {"contractId": contractId, "items": [movement_to_resp(m) for m in rows]}


# ---------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------


@router.post("/{contractId}/start", response_model=ContractResponse)
def start_work(
    contractId: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    contract = EscrowStateMachine().start_work(
        db,
        contract_id=parse_uuid(contractId, "contractId"),
        principal=principal,
        request_id=_request_id(request),
    )
    return contract_to_resp(contract)


@router.post("/{contractId}/submit", response_model=ContractResponse)
def submit_work(
    contractId: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    contract = EscrowStateMachine().submit_work(
        db,
        contract_id=parse_uuid(contractId, "contractId"),
        principal=principal,
        request_id=_request_id(request),
    )
    return contract_to_resp(contract)


@router.post("/{contractId}/confirm", response_model=ContractResponse)
def confirm_completion(
    contractId: str,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    contract = EscrowStateMachine().confirm_completion(
        db,
        contract_id=parse_uuid(contractId, "contractId"),
        principal=principal,
        request_id=_request_id(request),
    )
    return contract_to_resp(contract)


@router.post("/{contractId}/dispute", response_model=ContractDisputeResponse)
def raise_dispute(
    contractId: str,
    payload: RaiseDisputeRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    contract, dispute = DisputeService().raise_dispute(
        db,
        contract_id=parse_uuid(contractId, "contractId"),
        principal=principal,
        reason=payload.reason,
        request_id=_request_id(request),
    )
    return {"contract": contract_to_resp(contract), "dispute": dispute_to_resp(dispute)}
