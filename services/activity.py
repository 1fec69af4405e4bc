"""Append-only audit trail."""
from __future__ import annotations

from typing import Optional

from models import ActivityLog, db

SYSTEM_ACTOR = 'System'


class ActivityLogService:
    """Writes ActivityLog rows inside the caller's transaction.

    Rows are only added, never updated or deleted, so an entry commits or
    rolls back together with the operation it describes.
    """

    def record(
        self,
        actor: Optional[str],
        action: str,
        entity: str,
        entity_id,
        details: str = '',
    ) -> ActivityLog:
        entry = ActivityLog(
            user_name=actor or SYSTEM_ACTOR,
            action_type=action,
            entity=entity,
            entity_id=None if entity_id is None else str(entity_id),
            details=details,
        )
        db.session.add(entry)
        return entry

    def recent(self, limit: int = 100):
        return (
            ActivityLog.query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
            .all()
        )

    def count(self, action: Optional[str] = None, entity_id=None) -> int:
        query = ActivityLog.query
        if action:
            query = query.filter_by(action_type=action)
        if entity_id is not None:
            query = query.filter_by(entity_id=str(entity_id))
        return query.count()
