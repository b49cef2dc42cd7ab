# studex/api/v1/disputes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from studex.api.v1.contracts import parse_uuid
from studex.api.v1.presenters import contract_to_resp, dispute_to_resp
from studex.core.auth_deps import get_current_principal
from studex.db.session import get_db
from studex.policies.rbac import Principal
from studex.schemas.disputes import ContractDisputeResponse, DisputeResponse, ResolveDisputeRequest
from studex.services.dispute_service import DisputeService

router = APIRouter(prefix="/disputes")


@router.get("/{disputeId}", response_model=DisputeResponse)
def get_dispute(
    disputeId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    row = DisputeService().get(db, dispute_id=parse_uuid(disputeId, "disputeId"), principal=principal)
    return dispute_to_resp(row)


@router.post("/{disputeId}/resolve", response_model=ContractDisputeResponse)
def resolve_dispute(
    disputeId: str,
    payload: ResolveDisputeRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Admin-only. Routes the held funds per resolution and closes the contract.
    """
    contract, dispute = DisputeService().resolve(
        db,
        dispute_id=parse_uuid(disputeId, "disputeId"),
        principal=principal,
        resolution=payload.resolution,
        client_share_percent=payload.clientSharePercent,
        request_id=getattr(request.state, "request_id", None),
    )
    return {"contract": contract_to_resp(contract), "dispute": dispute_to_resp(dispute)}
