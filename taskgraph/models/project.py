import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskgraph.db.base import Base


class ProjectTemplate(Base):
    """
    Reusable blueprint of milestones and tasks.
    Template tasks carry day offsets and role tags instead of dates and people.
    """

    name: Mapped[str] = mapped_column(
        String(200), nullable=False, comment="Template name"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Template description"
    )

    meeting_type: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Kind of meeting this template prepares for",
    )


class Project(Base):
    """
    Project owning a task hierarchy.
    The anchor date is the meeting date that day offsets are measured from.
    """

    name: Mapped[str] = mapped_column(
        String(200), nullable=False, comment="Project name"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Project description"
    )

    anchor_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Meeting date that task day offsets are measured from",
    )

    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("project_templates.id", ondelete="SET NULL"),
        nullable=True,
        comment="Template this project was created from",
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name[:30]})>"
