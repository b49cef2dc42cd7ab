# studex/models/ledger_settlement.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studex.db.base import Base
from studex.db.types import JSONType


class LedgerSettlement(Base):
    """
    One row per contract whose escrowed funds were paid out.
    The unique contract_id is the storage-level guard against double release.
    """

    __tablename__ = "ledger_settlements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    contract_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)  # release | refund | split

    # [{"account_id": ..., "user_id": ..., "amount": ..., "reason": ...}]
    legs_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
