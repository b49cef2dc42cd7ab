#studex/models/escrow_contract.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studex.db.base import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EscrowContract(Base):
    """
    One escrow-protected hire: client ↔ freelancer ↔ amount.

    Rules:
      - amount is fixed at creation
      - status changes only through EscrowStateMachine
      - never deleted; released / resolved are final
    Client and freelancer are weak references (user ids from identity).
    """

    __tablename__ = "escrow_contracts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[str] = mapped_column(String(128), nullable=False)
    freelancer_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # opaque job/service reference from the catalog
    job_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    job_title: Mapped[str] = mapped_column(String(256), nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False)

    dispute_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_escrow_contract_amount_positive"),
        CheckConstraint("client_id <> freelancer_id", name="ck_escrow_contract_distinct_parties"),
        Index("ix_escrow_contract_client", "client_id", "status"),
        Index("ix_escrow_contract_freelancer", "freelancer_id", "status"),
        Index("ix_escrow_contract_status_created", "status", "created_at"),
    )

    __mapper_args__ = {"version_id_col": version}
