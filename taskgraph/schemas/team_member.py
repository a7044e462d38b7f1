import uuid
from datetime import datetime
from typing import Optional, Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskgraph.models.team_member import TeamMemberStatus


class TeamMemberCreate(BaseModel):
    """Schema for creating a team member"""

    first_name: Annotated[str, Field(min_length=1, max_length=191)]
    last_name: Annotated[str, Field(min_length=1, max_length=191)]
    email: Optional[str] = Field(None, max_length=255)
    role: Optional[str] = Field(None, max_length=100, description="Role held")
    status: TeamMemberStatus = Field(TeamMemberStatus.ACTIVE)
    is_placeholder: bool = Field(
        False, description="Administrative placeholder, never assigned work"
    )

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank roles as no role"""
        if v is None:
            return v
        return v.strip() or None


class TeamMemberStatusUpdate(BaseModel):
    """Schema for changing a member's status"""

    status: TeamMemberStatus = Field(..., description="New member status")


class TeamMemberResponse(BaseModel):
    """Team member details"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    role: Optional[str] = None
    status: TeamMemberStatus
    is_placeholder: bool
    created_at: datetime
