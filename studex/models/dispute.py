#studex/models/dispute.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from studex.db.base import Base


class Dispute(Base):
    """
    Owned by exactly one contract. At most one open dispute per contract;
    resolved exactly once by an admin.
    """

    __tablename__ = "disputes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    contract_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("escrow_contracts.id", ondelete="RESTRICT"),
        nullable=False,
    )

    raised_by: Mapped[str] = mapped_column(String(128), nullable=False)
    raised_by_party: Mapped[str] = mapped_column(String(32), nullable=False)  # client | freelancer
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    resolution: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    client_share_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_disputes_contract", "contract_id"),
        Index("ix_disputes_status", "status", "created_at"),
        Index(
            "uq_disputes_one_open_per_contract",
            "contract_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    __mapper_args__ = {"version_id_col": version}
