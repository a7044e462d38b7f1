import uuid
from typing import Optional

from sqlalchemy import String, Boolean, JSON, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskgraph.db.base import Base


class ActivityLog(Base):
    """
    Audit record of a mutation.
    Cascade-induced status changes are flagged and point at the task that triggered them.
    """

    actor_id: Mapped[Optional[str]] = mapped_column(
        String(191), nullable=True, index=True, comment="Who initiated the change"
    )

    action: Mapped[str] = mapped_column(
        String(100), nullable=False, comment="Action name"
    )

    entity_type: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="Kind of entity changed"
    )

    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, comment="Entity changed"
    )

    is_cascade: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="True when produced by a cascade rather than the user",
    )

    triggered_by_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, comment="Task whose change started the cascade"
    )

    details: Mapped[Optional[dict]] = mapped_column(
        JSON, default=dict, nullable=True, comment="Extra context"
    )

    __table_args__ = (Index("ix_activity_entity", "entity_type", "entity_id"),)
