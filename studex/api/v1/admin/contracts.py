# studex/api/v1/admin/contracts.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studex.api.v1.presenters import contract_to_resp, dispute_to_resp, page_to_resp
from studex.core.auth_deps import get_current_principal
from studex.core.pagination import Page, normalize_page
from studex.db.session import get_db
from studex.models.enums import ContractStatus
from studex.policies.rbac import Principal
from studex.schemas.contracts import ContractPage
from studex.schemas.disputes import DisputePage
from studex.services.contract_registry import ContractRegistry
from studex.services.dispute_service import DisputeService

router = APIRouter(prefix="/admin")


@router.get("/contracts", response_model=ContractPage)
def list_contracts_by_status(
    status: ContractStatus = Query(...),
    page: int = Query(default=1, ge=1),
    pageSize: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    result = ContractRegistry().list_by_status_for(
        db, principal=principal, status=status, page=page, page_size=pageSize
    )
    return page_to_resp(result, contract_to_resp)


@router.get("/disputes", response_model=DisputePage)
def list_open_disputes(
    page: int = Query(default=1, ge=1),
    pageSize: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    p, size, offset = normalize_page(page, pageSize)
    rows, total = DisputeService().list_open(db, principal=principal, offset=offset, limit=size)
    return page_to_resp(Page(items=rows, page=p, page_size=size, total=total), dispute_to_resp)
