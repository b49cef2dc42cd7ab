"""escrow core: ledger, contracts, disputes, notifications

Revision ID: 0001_escrow_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_escrow_core"
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name: str = "created_at"):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade():
    # ---------------- ledger ----------------
    op.create_table(
        "ledger_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_seq", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        _created_at("updated_at"),
        sa.CheckConstraint("balance >= 0", name="ck_ledger_account_balance_non_negative"),
    )

    op.create_table(
        "ledger_movements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "account_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("ledger_accounts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.String(length=32), nullable=False),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("prev_hash", sa.String(length=128), nullable=False),
        sa.Column("entry_hash", sa.String(length=128), nullable=False),
        _created_at(),
        sa.UniqueConstraint("account_id", "seq", name="uq_ledger_movement_seq"),
    )
    op.create_index("ix_ledger_movement_contract", "ledger_movements", ["contract_id"])

    op.create_table(
        "ledger_settlements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("legs_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
    )

    # ---------------- contracts ----------------
    op.create_table(
        "escrow_contracts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("client_id", sa.String(length=128), nullable=False),
        sa.Column("freelancer_id", sa.String(length=128), nullable=False),
        sa.Column("job_ref", sa.String(length=128), nullable=True),
        sa.Column("job_title", sa.String(length=256), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("dispute_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        _created_at("status_changed_at"),
        sa.CheckConstraint("amount > 0", name="ck_escrow_contract_amount_positive"),
        sa.CheckConstraint("client_id <> freelancer_id", name="ck_escrow_contract_distinct_parties"),
    )
    op.create_index("ix_escrow_contract_client", "escrow_contracts", ["client_id", "status"])
    op.create_index("ix_escrow_contract_freelancer", "escrow_contracts", ["freelancer_id", "status"])
    op.create_index("ix_escrow_contract_status_created", "escrow_contracts", ["status", "created_at"])

    op.create_table(
        "contract_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "contract_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escrow_contracts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("from_status", sa.String(length=32), nullable=True),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        _created_at(),
        sa.Column("payload_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_contract_events_contract", "contract_events", ["contract_id", "created_at"])
    op.create_index("ix_contract_events_type", "contract_events", ["event_type"])

    # ---------------- disputes ----------------
    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "contract_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("escrow_contracts.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("raised_by", sa.String(length=128), nullable=False),
        sa.Column("raised_by_party", sa.String(length=32), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("resolution", sa.String(length=32), nullable=True),
        sa.Column("client_share_percent", sa.Integer(), nullable=True),
        sa.Column("resolved_by", sa.String(length=128), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        _created_at(),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_disputes_contract", "disputes", ["contract_id"])
    op.create_index("ix_disputes_status", "disputes", ["status", "created_at"])
    op.create_index(
        "uq_disputes_one_open_per_contract",
        "disputes",
        ["contract_id"],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
    )

    # ---------------- notifications ----------------
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("recipient_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("contract_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.Column("payload_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
    )
    op.create_index("ix_notifications_recipient", "notifications", ["recipient_id", "is_read", "created_at"])

    # ---------------- idempotency ----------------
    op.create_table(
        "idempotency_key_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("participant_id", sa.String(length=128), nullable=False),
        sa.Column("endpoint_key", sa.String(length=64), nullable=False),
        sa.Column("idem_key", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=128), nullable=False),
        sa.Column("response_status", sa.Integer(), nullable=False, server_default=sa.text("200")),
        sa.Column("response_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        sa.UniqueConstraint("participant_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
    )
    op.create_index("ix_idem_lookup", "idempotency_key_records", ["participant_id", "endpoint_key"])


def downgrade():
    op.drop_index("ix_idem_lookup", table_name="idempotency_key_records")
    op.drop_table("idempotency_key_records")

    op.drop_index("ix_notifications_recipient", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("uq_disputes_one_open_per_contract", table_name="disputes")
    op.drop_index("ix_disputes_status", table_name="disputes")
    op.drop_index("ix_disputes_contract", table_name="disputes")
    op.drop_table("disputes")

    op.drop_index("ix_contract_events_type", table_name="contract_events")
    op.drop_index("ix_contract_events_contract", table_name="contract_events")
    op.drop_table("contract_events")

    op.drop_index("ix_escrow_contract_status_created", table_name="escrow_contracts")
    op.drop_index("ix_escrow_contract_freelancer", table_name="escrow_contracts")
    op.drop_index("ix_escrow_contract_client", table_name="escrow_contracts")
    op.drop_table("escrow_contracts")

    op.drop_table("ledger_settlements")

    op.drop_index("ix_ledger_movement_contract", table_name="ledger_movements")
    op.drop_table("ledger_movements")
    op.drop_table("ledger_accounts")
