"""
Read-only access to tracked catalog items.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.monitored_item import MonitoredItem


class MonitoredItemRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_active_items(self, user_id: uuid.UUID) -> list[MonitoredItem]:
        """
        Non-archived items for one user in a stable order.
        """

        stmt = (
            select(MonitoredItem)
            .where(
                MonitoredItem.user_id == user_id,
                MonitoredItem.archived.is_(False),
            )
            .order_by(MonitoredItem.created_at, MonitoredItem.item_id)
        )
        return list(self._session.scalars(stmt).all())
