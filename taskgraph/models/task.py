import uuid
from datetime import datetime
from typing import Optional, List
from enum import Enum

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    JSON,
    Index,
    ForeignKey,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskgraph.db.base import Base


class TaskStatus(str, Enum):
    """Workflow states; only COMPLETED takes part in roll-up."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskMarker(str, Enum):
    """Well-known tasks inside a project"""

    ANCHOR = "anchor"  # the meeting itself
    REVIEW = "review"  # review checkpoint that dependents are dated from


class Task(Base):
    """
    Node of a project's task forest.

    Hierarchy is carried by ``parent_task_id`` only; ``level`` is a display hint.
    A task with ``days_from_meeting`` has its due date derived from the project
    anchor date, a task with ``depends_on_task_id`` from that task's due date.
    """

    title: Mapped[str] = mapped_column(
        String(500), nullable=False, comment="Short label shown in task lists"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Free-form notes"
    )

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owning project (null for template tasks)",
    )

    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("project_templates.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owning template (null for project tasks)",
    )

    milestone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("milestones.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Milestone grouping",
    )

    # Task hierarchy
    parent_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Direct parent in the task forest",
    )

    level: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Depth hint for display"
    )

    sort_order: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="Ordering among siblings"
    )

    status: Mapped[TaskStatus] = mapped_column(
        default=TaskStatus.TODO,
        nullable=False,
        index=True,
        comment="Workflow state",
    )

    task_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Task type, keys the offset used after the review task",
    )

    marker: Mapped[Optional[TaskMarker]] = mapped_column(
        nullable=True,
        comment="Marks the anchor (meeting) task or the review task",
    )

    # Dates
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Pinned to the reference hour, UTC"
    )

    days_from_meeting: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Signed day offset from the project anchor date",
    )

    depends_on_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Task whose due date drives this one",
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Set on completion, cleared on reopen"
    )

    # Assignment
    assigned_to: Mapped[Optional[List[str]]] = mapped_column(
        JSON, default=list, nullable=True, comment="Concrete team member IDs"
    )

    assigned_to_role: Mapped[Optional[List[str]]] = mapped_column(
        JSON, default=list, nullable=True, comment="Role tags awaiting resolution"
    )

    __table_args__ = (
        Index("ix_tasks_project_status", "project_id", "status"),
        Index("ix_tasks_parent_order", "parent_task_id", "sort_order"),
        Index("ix_tasks_project_marker", "project_id", "marker"),
    )

    @property
    def is_subtask(self) -> bool:
        """True for any task below a root."""
        return self.parent_task_id is not None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def assignee_ids(self) -> List[str]:
        return list(self.assigned_to or [])

    @property
    def role_tags(self) -> List[str]:
        return list(self.assigned_to_role or [])

    def __repr__(self) -> str:
        return (
            f"<Task {self.id} {self.status.value} {self.title[:30]!r}>"
        )


class TaskComment(Base):
    """
    Comment left on a task.
    """

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Task ID",
    )

    author_id: Mapped[Optional[str]] = mapped_column(
        String(191), nullable=True, comment="Comment author"
    )

    content: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Comment body"
    )


class TaskAttachment(Base):
    """
    File attached to a task. The file itself lives in external storage.
    """

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Task ID",
    )

    filename: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Name as uploaded"
    )

    file_path: Mapped[str] = mapped_column(
        String(500), nullable=False, comment="Path in the storage provider"
    )


class TaskUserPriority(Base):
    """
    Personal priority a user gave to a task.
    """

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        comment="Task ID",
    )

    user_id: Mapped[str] = mapped_column(
        String(191), nullable=False, comment="User ID"
    )

    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Lower sorts first"
    )

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_priorities_task_user"),
    )
