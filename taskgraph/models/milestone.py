import uuid
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, CheckConstraint, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskgraph.db.base import Base


class Milestone(Base):
    """
    Grouping of tasks inside a project or a template.
    """

    title: Mapped[str] = mapped_column(
        String(300), nullable=False, comment="Milestone title"
    )

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owning project",
    )

    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owning template",
    )

    sort_order: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Ordering among milestones"
    )

    __table_args__ = (
        Index("ix_milestones_project_order", "project_id", "sort_order"),
        CheckConstraint(
            "(project_id IS NULL) <> (template_id IS NULL)",
            name="milestone_single_owner",
        ),
    )
