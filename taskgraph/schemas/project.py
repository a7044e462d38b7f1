import uuid
from datetime import date, datetime
from typing import Optional, List, Dict, Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProjectCreate(BaseModel):
    """Schema for creating a project"""

    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: Optional[str] = None
    anchor_date: Optional[date] = Field(None, description="Meeting date")


class ProjectResponse(BaseModel):
    """Project details"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    anchor_date: Optional[datetime] = None
    template_id: Optional[uuid.UUID] = None
    created_at: datetime


class AnchorDateUpdate(BaseModel):
    """Schema for moving the project meeting date"""

    anchor_date: date = Field(..., description="New meeting date")
    actor_id: Optional[str] = Field(None, max_length=191)


class AnchorUpdateResponse(BaseModel):
    """Result of an anchor date change"""

    project_id: uuid.UUID
    anchor_date: datetime
    updated_task_count: int = Field(..., ge=0)


class RoleResolutionResponse(BaseModel):
    """Result of a role resolution pass"""

    project_id: uuid.UUID
    resolved_count: int = Field(..., ge=0, description="Role tags resolved")
    still_pending_roles: Dict[str, List[str]] = Field(
        default_factory=dict, description="Task ID -> roles awaiting a member"
    )


class MilestoneCreate(BaseModel):
    """Schema for creating a milestone"""

    title: Annotated[str, Field(min_length=1, max_length=300)]
    project_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    sort_order: int = 0

    @model_validator(mode="after")
    def validate_owner(self) -> "MilestoneCreate":
        """A milestone belongs to exactly one project or template"""
        if (self.project_id is None) == (self.template_id is None):
            raise ValueError("Exactly one of project_id or template_id is required")
        return self


class MilestoneResponse(BaseModel):
    """Milestone details"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    project_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    sort_order: int


class TemplateCreate(BaseModel):
    """Schema for creating a project template"""

    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: Optional[str] = None
    meeting_type: Optional[str] = Field(None, max_length=100)


class TemplateResponse(BaseModel):
    """Template details"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    meeting_type: Optional[str] = None


class ProjectFromTemplateCreate(BaseModel):
    """Schema for instantiating a template"""

    template_id: uuid.UUID
    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: Optional[str] = None
    anchor_date: Optional[date] = Field(None, description="Meeting date")
    actor_id: Optional[str] = Field(None, max_length=191)


class ProjectFromTemplateResponse(BaseModel):
    """Result of instantiating a template"""

    project: ProjectResponse
    created_task_count: int
    resolution: RoleResolutionResponse
