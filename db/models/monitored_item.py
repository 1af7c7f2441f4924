"""
db/models/monitored_item.py

Tracked catalog entries owned by a user.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class MonitoredItem(Base, TimestampMixin):
    __tablename__ = "monitored_items"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    item_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Marketplace catalog identifier (e.g. ASIN)",
    )
    country_market: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="com",
        comment="Marketplace domain suffix: com, co.uk, de, ...",
    )
    archived: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", "country_market", name="uq_monitored_items_user_item"),
        Index("ix_monitored_items_user_id_archived", "user_id", "archived"),
    )

    def __repr__(self) -> str:
        return f"<MonitoredItem user_id={self.user_id} item_id={self.item_id!r} market={self.country_market!r}>"
