import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


class ActivityEvent(BaseModel):
    """Audit event handed to the activity sink"""

    action: str = Field(..., description="Action name, e.g. task_status_changed")
    entity_type: str = Field("task", description="Kind of entity changed")
    entity_id: Optional[uuid.UUID] = Field(None, description="Entity changed")
    actor_id: Optional[str] = Field(None, description="Who initiated the change")
    is_cascade: bool = Field(False, description="Produced by a cascade")
    triggered_by_task_id: Optional[uuid.UUID] = Field(
        None, description="Task whose change started the cascade"
    )
    details: Dict[str, Any] = Field(default_factory=dict)


class ActivityResponse(BaseModel):
    """Stored activity record"""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    actor_id: Optional[str] = None
    is_cascade: bool
    triggered_by_task_id: Optional[uuid.UUID] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime
