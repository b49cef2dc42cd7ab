# studex/models/ledger_account.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studex.db.base import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerAccount(Base):
    """
    Available balance of one user, in minor currency units.

    Mutated only by LedgerService; every change is paired with exactly one
    LedgerMovement. `version` is the optimistic-lock counter: a stale UPDATE
    raises StaleDataError and the unit of work re-runs.
    """

    __tablename__ = "ledger_accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # last movement seq, drives the per-account hash chain
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_ledger_account_balance_non_negative"),
    )

    __mapper_args__ = {"version_id_col": version}
