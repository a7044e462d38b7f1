from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.db.client import get_db
from taskgraph.schemas.project import MilestoneCreate, MilestoneResponse
from taskgraph.schemas.responses import MessageResponse, DataResponse
from taskgraph.services.task_engine import TaskEngine

router = APIRouter(prefix="/milestones", tags=["Milestones"])


@router.post(
    "/",
    response_model=DataResponse[MilestoneResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_milestone(
    milestone_data: MilestoneCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[MilestoneResponse]:
    engine = TaskEngine(db)
    milestone = await engine.create_milestone(milestone_data)
    return DataResponse(
        message="Milestone created successfully",
        data=MilestoneResponse.model_validate(milestone),
    )


@router.get("/{milestone_id}", response_model=DataResponse[MilestoneResponse])
async def get_milestone(
    milestone_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[MilestoneResponse]:
    engine = TaskEngine(db)
    milestone = await engine.get_milestone(milestone_id)
    return DataResponse(
        message="Milestone retrieved successfully",
        data=MilestoneResponse.model_validate(milestone),
    )


@router.delete("/{milestone_id}")
async def delete_milestone(
    milestone_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """
    Delete a milestone. Its tasks are kept, without a milestone.
    """
    engine = TaskEngine(db)
    detached = await engine.delete_milestone(milestone_id)
    return MessageResponse(message=f"Milestone deleted, {detached} task(s) detached")
