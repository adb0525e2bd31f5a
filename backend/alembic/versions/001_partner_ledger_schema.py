"""Initial schema: admin_users, partner_accounts, fee_schedule_entries, partner_transactions, audit_log, notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "admin_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_users_username", "admin_users", ["username"], unique=True)

    op.create_table(
        "partner_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("processor_account_ref", sa.String(255), nullable=False),
        sa.Column(
            "onboarding_status",
            sa.Enum("pending", "in_progress", "completed", "rejected", name="onboardingstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("fee_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_accept_cards", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_receive_transfers", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("business_type", sa.String(50), nullable=True),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_partner_accounts_user_id", "partner_accounts", ["user_id"], unique=True)
    op.create_index(
        "ix_partner_accounts_processor_account_ref", "partner_accounts", ["processor_account_ref"], unique=True
    )
    op.create_index("ix_partner_accounts_onboarding_status", "partner_accounts", ["onboarding_status"])

    op.create_table(
        "fee_schedule_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("partner_account_id", sa.String(36), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("fee_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("previous_fee", sa.Numeric(5, 2), nullable=True),
        sa.Column("effective_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["partner_account_id"], ["partner_accounts.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("partner_account_id", "sequence", name="uq_fee_schedule_entries_partner_sequence"),
    )
    op.create_index("ix_fee_schedule_entries_partner_account_id", "fee_schedule_entries", ["partner_account_id"])

    op.create_table(
        "partner_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("partner_account_id", sa.String(36), nullable=False),
        sa.Column("booking_reference", sa.String(255), nullable=False),
        sa.Column(
            "booking_kind",
            sa.Enum("activity", "event", "vehicle", "accommodation", "package", name="bookingkind"),
            nullable=False,
        ),
        sa.Column("processor_payment_reference", sa.String(255), nullable=False),
        sa.Column("processor_transfer_reference", sa.String(255), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee", sa.BigInteger(), nullable=False),
        sa.Column("partner_amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "failed", "refunded", name="transactionstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("metadata", JSON, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["partner_account_id"], ["partner_accounts.id"]),
        sa.CheckConstraint("amount = platform_fee + partner_amount", name="ck_partner_transactions_split"),
    )
    op.create_index(
        "ix_partner_transactions_processor_payment_reference",
        "partner_transactions",
        ["processor_payment_reference"],
        unique=True,
    )
    op.create_index("ix_partner_transactions_partner_account_id", "partner_transactions", ["partner_account_id"])
    op.create_index("ix_partner_transactions_status", "partner_transactions", ["status"])
    op.create_index("ix_partner_transactions_created_at", "partner_transactions", ["created_at"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("actor_type", sa.String(50), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(36), nullable=True),
        sa.Column("details", JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_resource_id", "audit_log", ["resource_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recipient_user_id", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_entity", sa.String(64), nullable=True),
        sa.Column("data", JSON, nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_recipient_user_id", "notifications", ["recipient_user_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("audit_log")
    op.drop_table("partner_transactions")
    op.drop_table("fee_schedule_entries")
    op.drop_table("partner_accounts")
    op.drop_table("admin_users")
    op.execute("DROP TYPE IF EXISTS transactionstatus")
    op.execute("DROP TYPE IF EXISTS bookingkind")
    op.execute("DROP TYPE IF EXISTS onboardingstatus")
