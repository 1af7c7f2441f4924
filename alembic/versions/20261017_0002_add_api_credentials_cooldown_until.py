"""add cooldown_until to api_credentials

Revision ID: 20261017_0002
Revises: 20261001_0001
Create Date: 2026-10-17 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "api_credentials",
        sa.Column(
            "cooldown_until",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="skipped by selection until this instant",
        ),
    )


def downgrade() -> None:
    op.drop_column("api_credentials", "cooldown_until")
