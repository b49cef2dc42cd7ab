from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, StringConstraints

from studex.models.enums import ContractStatus
from studex.schemas.primitives import MinorUnits, UserId


class CreateContractRequest(BaseModel):
    freelancerId: UserId
    amount: MinorUnits
    jobTitle: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=256)]
    jobRef: Optional[Annotated[str, StringConstraints(max_length=128)]] = Field(
        default=None, description="opaque job/service reference from the catalog"
    )


class ContractResponse(BaseModel):
    contractId: str
    clientId: str
    freelancerId: str
    jobRef: Optional[str] = None
    jobTitle: str
    amount: int
    status: ContractStatus
    disputeId: Optional[str] = None
    createdAtIso: str
    statusChangedAtIso: str


class ContractPage(BaseModel):
    items: List[ContractResponse]
    page: int
    pageSize: int
    total: int
    totalPages: int


class ContractEventResponse(BaseModel):
    eventId: str
    eventType: str
    fromStatus: Optional[str] = None
    toStatus: str
    actorId: str
    actorRole: str
    requestId: Optional[str] = None
    createdAtIso: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ContractEventList(BaseModel):
    contractId: str
    events: List[ContractEventResponse]


class EscrowSummaryResponse(BaseModel):
    role: str
    totalHeld: int
    activeCount: int
    releasedCount: int
    disputedCount: int
    resolvedCount: int
