"""create scrape_settings, monitored_items, api_credentials, scrape_logs, scrape_retry_waves

Revision ID: 20261001_0001
Revises:
Create Date: 2026-10-01 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    # ---------------------------------------------------------------------------
    # scrape_settings
    # One row per user. Only last_scrape_at is written by the scheduler.
    # ---------------------------------------------------------------------------
    op.create_table(
        "scrape_settings",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "scraping_interval",
            sa.String(length=32),
            nullable=True,
            comment="'N' for N runs per day, 'daily_at_H' for a fixed UTC hour, 'off' to disable",
        ),
        sa.Column("last_scrape_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "scraping_start_hour",
            sa.Integer(),
            nullable=True,
            comment="Informational only; not used by the due check",
        ),
        sa.Column(
            "fallback_api_key",
            sa.Text(),
            nullable=True,
            comment="Account-level legacy credential used when no pooled credential is usable",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("user_id"),
    )

    # ---------------------------------------------------------------------------
    # monitored_items
    # ---------------------------------------------------------------------------
    op.create_table(
        "monitored_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "item_id",
            sa.String(length=32),
            nullable=False,
            comment="Marketplace catalog identifier (e.g. ASIN)",
        ),
        sa.Column(
            "country_market",
            sa.String(length=16),
            nullable=False,
            server_default="com",
            comment="Marketplace domain suffix: com, co.uk, de, ...",
        ),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "item_id", "country_market", name="uq_monitored_items_user_item"),
    )
    op.create_index("ix_monitored_items_user_id_archived", "monitored_items", ["user_id", "archived"])

    # ---------------------------------------------------------------------------
    # api_credentials
    # credits never drops below zero; the debit is a single conditional UPDATE.
    # ---------------------------------------------------------------------------
    op.create_table(
        "api_credentials",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("service_name", sa.String(length=50), nullable=False, server_default="scraperapi"),
        sa.Column("secret_key", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.String(length=16),
            nullable=False,
            server_default="active",
            comment="active, exhausted, disabled",
        ),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_credits", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("cost_per_call", sa.Integer(), nullable=True),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("last_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("credits >= 0", name="ck_api_credentials_credits_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_credentials_user_service", "api_credentials", ["user_id", "service_name"])
    op.create_index("ix_api_credentials_last_reset_at", "api_credentials", ["last_reset_at"])

    # ---------------------------------------------------------------------------
    # scrape_logs
    # Append-only. credential_id is NULL for fallback-key calls.
    # ---------------------------------------------------------------------------
    op.create_table(
        "scrape_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "credential_id",
            postgresql.UUID(as_uuid=True),
            nullable=True,
            comment="NULL when the account-level fallback key was used",
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("item_id", sa.String(length=32), nullable=False),
        sa.Column("country_market", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, comment="success, failure"),
        sa.Column("cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scrape_logs_credential_id", "scrape_logs", ["credential_id"])
    op.create_index("ix_scrape_logs_user_id_created_at", "scrape_logs", ["user_id", "created_at"])

    # ---------------------------------------------------------------------------
    # scrape_retry_waves
    # At most one pending wave per user; polled by the scheduler tick.
    # ---------------------------------------------------------------------------
    op.create_table(
        "scrape_retry_waves",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("wave", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "jobs",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        *_timestamps(),
        sa.CheckConstraint("wave IN (1, 2)", name="ck_scrape_retry_waves_wave"),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("ix_scrape_retry_waves_due_at", "scrape_retry_waves", ["due_at"])


def downgrade() -> None:
    op.drop_index("ix_scrape_retry_waves_due_at", table_name="scrape_retry_waves")
    op.drop_table("scrape_retry_waves")

    op.drop_index("ix_scrape_logs_user_id_created_at", table_name="scrape_logs")
    op.drop_index("ix_scrape_logs_credential_id", table_name="scrape_logs")
    op.drop_table("scrape_logs")

    op.drop_index("ix_api_credentials_last_reset_at", table_name="api_credentials")
    op.drop_index("ix_api_credentials_user_service", table_name="api_credentials")
    op.drop_table("api_credentials")

    op.drop_index("ix_monitored_items_user_id_archived", table_name="monitored_items")
    op.drop_table("monitored_items")

    op.drop_table("scrape_settings")
