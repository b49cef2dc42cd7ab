# studex/models/ledger_movement.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studex.db.base import Base


class LedgerMovement(Base):
    """
    Append-only hash-chained balance movements, one chain per account.

    entry_hash = SHA256(prev_hash + canonical(movement fields))
    Never UPDATE or DELETE a row.
    """

    __tablename__ = "ledger_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("ledger_accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(Integer, nullable=False)  # monotonic per account

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # signed
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)

    # weak reference: the ledger does not own contracts
    contract_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    prev_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("account_id", "seq", name="uq_ledger_movement_seq"),
        Index("ix_ledger_movement_contract", "contract_id"),
    )
