from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from studex.models.enums import MovementReason
from studex.schemas.primitives import MinorUnits


class AmountRequest(BaseModel):
    amount: MinorUnits


class BalanceResponse(BaseModel):
    userId: str
    balance: int


class MovementResponse(BaseModel):
    movementId: str
    seq: int
    amount: int
    balanceAfter: int
    reason: MovementReason
    contractId: Optional[str] = None
    entryHash: str
    createdAtIso: str


class BalanceMovementResponse(BaseModel):
    balance: int
    movement: MovementResponse


class MovementPage(BaseModel):
    items: List[MovementResponse]
    page: int
    pageSize: int
    total: int
    totalPages: int


class ChainVerifyResponse(BaseModel):
    userId: str
    valid: bool


class ContractMovementList(BaseModel):
    contractId: str
    items: List[MovementResponse]
