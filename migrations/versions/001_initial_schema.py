"""Initial schema: users, providers, bookings, automations, ledger

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Creates the marketplace tables the automation engine reads, the automation
and execution log tables, and the finance ledger and wallet tables.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables."""

    op.create_table(
        "providers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column(
            "timezone",
            sa.String(64),
            nullable=True,
            comment="IANA timezone for calendar triggers and message dates",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "provider_messaging_settings",
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("twilio_account_sid", sa.String(64), nullable=True),
        sa.Column("twilio_auth_token", sa.String(128), nullable=True),
        sa.Column("twilio_from_number", sa.String(50), nullable=True),
        sa.Column("twilio_whatsapp_number", sa.String(50), nullable=True),
        sa.Column("telnyx_api_key", sa.String(255), nullable=True),
        sa.Column("telnyx_from_number", sa.String(50), nullable=True),
        sa.Column("telnyx_messaging_profile_id", sa.String(64), nullable=True),
        sa.Column("resend_api_key", sa.String(255), nullable=True),
        sa.Column("from_email", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True, comment="E.164 format"),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), nullable=False, server_default="customer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_provider_id", "users", ["provider_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("booking_number", sa.String(32), nullable=True, unique=True),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "referral_source",
            sa.String(100),
            nullable=True,
            comment="Set when the booking came through a referral",
        ),
        sa.Column("booking_source", sa.String(50), nullable=True, comment="online, walk_in, ..."),
        *_timestamps(),
    )
    op.create_index("ix_bookings_provider_id", "bookings", ["provider_id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_scheduled_at", "bookings", ["scheduled_at"])

    op.create_table(
        "service_packages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_service_packages_provider_id", "service_packages", ["provider_id"])
    op.create_index("ix_service_packages_customer_id", "service_packages", ["customer_id"])
    op.create_index("ix_service_packages_expires_at", "service_packages", ["expires_at"])

    op.create_table(
        "marketing_automations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("trigger_type", sa.String(50), nullable=False),
        sa.Column(
            "trigger_config",
            sa.JSON(),
            nullable=False,
            server_default="{}",
            comment="hours_before, days, visit_count, ...",
        ),
        sa.Column(
            "delay_minutes",
            sa.Integer(),
            nullable=False,
            server_default="0",
            comment="Offset applied before firing",
        ),
        sa.Column("action_type", sa.String(20), nullable=False, server_default="sms"),
        sa.Column(
            "action_config",
            sa.JSON(),
            nullable=False,
            server_default="{}",
            comment="message_template, subject, from_name",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
    )
    op.create_index("ix_marketing_automations_provider_id", "marketing_automations", ["provider_id"])
    op.create_index("ix_marketing_automations_trigger_type", "marketing_automations", ["trigger_type"])
    op.create_index("ix_marketing_automations_is_active", "marketing_automations", ["is_active"])

    op.create_table(
        "automation_executions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "automation_id",
            sa.Uuid(),
            sa.ForeignKey("marketing_automations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("message_id", sa.String(255), nullable=True),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="sent"),
        sa.Column(
            "dedup_bucket",
            sa.String(10),
            nullable=False,
            comment="UTC day (YYYY-MM-DD) of the execution",
        ),
        sa.Column(
            "executed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "automation_id",
            "customer_id",
            "dedup_bucket",
            name="uq_automation_executions_automation_customer_day",
        ),
    )
    op.create_index("ix_automation_executions_automation_id", "automation_executions", ["automation_id"])
    op.create_index("ix_automation_executions_customer_id", "automation_executions", ["customer_id"])
    op.create_index("ix_automation_executions_executed_at", "automation_executions", ["executed_at"])

    op.create_table(
        "finance_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("transaction_type", sa.String(50), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True, comment="Customer-facing gross"),
        sa.Column("fees", sa.Numeric(12, 2), nullable=True, comment="Gateway cost"),
        sa.Column("commission", sa.Numeric(12, 2), nullable=True),
        sa.Column("net", sa.Numeric(12, 2), nullable=True, comment="Platform or provider take"),
        sa.Column(
            "booking_id",
            sa.Uuid(),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "customer_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_finance_transactions_transaction_type", "finance_transactions", ["transaction_type"])
    op.create_index("ix_finance_transactions_provider_id", "finance_transactions", ["provider_id"])
    op.create_index("ix_finance_transactions_created_at", "finance_transactions", ["created_at"])

    op.create_table(
        "wallet_topups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_wallet_topups_user_id", "wallet_topups", ["user_id"])
    op.create_index("ix_wallet_topups_status", "wallet_topups", ["status"])
    op.create_index("ix_wallet_topups_created_at", "wallet_topups", ["created_at"])

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_wallet_transactions_user_id", "wallet_transactions", ["user_id"])
    op.create_index("ix_wallet_transactions_created_at", "wallet_transactions", ["created_at"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("wallet_transactions")
    op.drop_table("wallet_topups")
    op.drop_table("finance_transactions")
    op.drop_table("automation_executions")
    op.drop_table("marketing_automations")
    op.drop_table("service_packages")
    op.drop_table("bookings")
    op.drop_table("users")
    op.drop_table("provider_messaging_settings")
    op.drop_table("providers")
