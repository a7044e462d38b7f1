import uuid
from datetime import date, datetime
from typing import Optional, List, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from taskgraph.models.task import TaskStatus, TaskMarker


# ==========================================
# Request Schemas
# ==========================================


class TaskCreate(BaseModel):
    """Schema for creating a task under a project or a template"""

    title: Annotated[str, Field(min_length=1, max_length=500, description="Task title")]
    description: Optional[str] = Field(None, description="Detailed task description")

    project_id: Optional[uuid.UUID] = Field(None, description="Project ID")
    template_id: Optional[uuid.UUID] = Field(None, description="Template ID")
    milestone_id: Optional[uuid.UUID] = Field(None, description="Milestone ID")
    parent_task_id: Optional[uuid.UUID] = Field(
        None, description="Parent task ID for subtasks"
    )

    sort_order: int = Field(0, description="Ordering among siblings")
    task_type: Optional[str] = Field(None, max_length=50)
    marker: Optional[TaskMarker] = Field(None, description="Anchor or review marker")

    due_date: Optional[datetime] = Field(None, description="Absolute due date")
    days_from_meeting: Optional[int] = Field(
        None, ge=-3650, le=3650, description="Signed day offset from the anchor date"
    )
    depends_on_task_id: Optional[uuid.UUID] = Field(
        None, description="Task whose due date drives this one"
    )

    assigned_to: List[uuid.UUID] = Field(
        default_factory=list, description="Concrete team member IDs"
    )
    assigned_to_role: List[str] = Field(
        default_factory=list, description="Role tags to resolve"
    )

    @field_validator("assigned_to_role")
    @classmethod
    def validate_roles(cls, v: List[str]) -> List[str]:
        """Drop blanks and the 'none' sentinel, keep first-seen order"""
        cleaned: List[str] = []
        for role in v:
            role = role.strip()
            if role and role.lower() != "none" and role not in cleaned:
                cleaned.append(role)
        return cleaned

    @model_validator(mode="after")
    def validate_owner(self) -> "TaskCreate":
        """A task belongs to exactly one project or template"""
        if (self.project_id is None) == (self.template_id is None):
            raise ValueError("Exactly one of project_id or template_id is required")
        return self


class TaskStatusUpdate(BaseModel):
    """Schema for updating task status"""

    status: TaskStatus = Field(..., description="New task status")
    actor_id: Optional[str] = Field(
        None, max_length=191, description="Who is making the change"
    )


class TaskDueDateUpdate(BaseModel):
    """Schema for moving a task's due date"""

    due_date: date = Field(..., description="New due date")
    actor_id: Optional[str] = Field(None, max_length=191)


class TaskParentUpdate(BaseModel):
    """Schema for moving a task under another parent"""

    parent_task_id: Optional[uuid.UUID] = Field(
        None, description="New parent, or null to make it a root task"
    )


# ==========================================
# Response Schemas
# ==========================================


class TaskResponse(BaseModel):
    """Task details"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: Optional[str] = None
    project_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    milestone_id: Optional[uuid.UUID] = None
    parent_task_id: Optional[uuid.UUID] = None
    level: int
    sort_order: int
    status: TaskStatus
    task_type: Optional[str] = None
    marker: Optional[TaskMarker] = None
    due_date: Optional[datetime] = None
    days_from_meeting: Optional[int] = None
    depends_on_task_id: Optional[uuid.UUID] = None
    completed_at: Optional[datetime] = None
    assigned_to: List[str] = Field(default_factory=list)
    assigned_to_role: List[str] = Field(default_factory=list)

    @field_validator("assigned_to", "assigned_to_role", mode="before")
    @classmethod
    def none_as_empty(cls, v: Optional[List[str]]) -> List[str]:
        return v or []


class StatusChangeResponse(BaseModel):
    """Result of a status change and its cascade"""

    task: TaskResponse
    cascaded_task_ids: List[uuid.UUID] = Field(default_factory=list)


class DueDateChangeResponse(BaseModel):
    """Result of moving a task's due date"""

    task: TaskResponse
    updated_task_count: int = Field(
        ..., ge=0, description="Other tasks whose due date was recomputed"
    )
