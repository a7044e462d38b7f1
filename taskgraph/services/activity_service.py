import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.models.activity import ActivityLog
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.services.interfaces import AuditSink

logger = logging.getLogger(__name__)


class ActivityService(AuditSink):
    """Activity log stored alongside the task graph"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(self, event: ActivityEvent) -> ActivityLog:
        """
        Store an activity event in the current transaction.
        :param event: Event to record.
        :return: Created ActivityLog row.
        """
        entry = ActivityLog(
            actor_id=event.actor_id,
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            is_cascade=event.is_cascade,
            triggered_by_task_id=event.triggered_by_task_id,
            details=event.details,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.debug(
            f"Recorded {event.action} on {event.entity_type} {event.entity_id}"
            f"{' (cascade)' if event.is_cascade else ''}"
        )
        return entry

    async def list_for_entity(self, entity_id: UUID) -> List[ActivityLog]:
        """
        Get activity for one entity, oldest first.
        :param entity_id: UUID of the entity.
        :return: List of ActivityLog rows.
        """
        stmt = (
            select(ActivityLog)
            .where(ActivityLog.entity_id == entity_id)
            .order_by(ActivityLog.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())
