from __future__ import annotations

from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, StringConstraints

from studex.models.enums import DisputeResolution, DisputeStatus
from studex.schemas.contracts import ContractResponse


class RaiseDisputeRequest(BaseModel):
    reason: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]


class ResolveDisputeRequest(BaseModel):
    resolution: DisputeResolution
    clientSharePercent: Optional[int] = Field(
        default=None, ge=1, le=99, description="client's share for resolution=split (default 50)"
    )


class DisputeResponse(BaseModel):
    disputeId: str
    contractId: str
    raisedBy: str
    raisedByParty: str
    reason: str
    status: DisputeStatus
    resolution: Optional[DisputeResolution] = None
    clientSharePercent: Optional[int] = None
    resolvedBy: Optional[str] = None
    createdAtIso: str
    resolvedAtIso: Optional[str] = None


class ContractDisputeResponse(BaseModel):
    contract: ContractResponse
    dispute: DisputeResponse


class DisputePage(BaseModel):
    items: List[DisputeResponse]
    page: int
    pageSize: int
    total: int
    totalPages: int
