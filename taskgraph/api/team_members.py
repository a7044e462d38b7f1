import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.db.client import get_db
from taskgraph.models.team_member import TeamMemberStatus
from taskgraph.schemas.responses import MessageResponse, DataResponse, ListResponse
from taskgraph.schemas.team_member import (
    TeamMemberCreate,
    TeamMemberStatusUpdate,
    TeamMemberResponse,
)
from taskgraph.services.team_member_service import TeamMemberService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team-members", tags=["Team Members"])


@router.post(
    "/",
    response_model=DataResponse[TeamMemberResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_team_member(
    member_data: TeamMemberCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TeamMemberResponse]:
    member_service = TeamMemberService(db)
    member = await member_service.create_member(member_data)
    return DataResponse(
        message="Team member created successfully",
        data=TeamMemberResponse.model_validate(member),
    )


@router.get("/", response_model=ListResponse[TeamMemberResponse])
async def list_team_members(
    db: Annotated[AsyncSession, Depends(get_db)],
    role: Optional[str] = Query(None, description="Filter by role"),
    member_status: Optional[TeamMemberStatus] = Query(
        None, alias="status", description="Filter by status"
    ),
) -> ListResponse[TeamMemberResponse]:
    member_service = TeamMemberService(db)
    members = await member_service.list_members(role=role, status=member_status)
    return ListResponse(
        message=f"Retrieved {len(members)} team members",
        data=[TeamMemberResponse.model_validate(member) for member in members],
    )


@router.get("/{member_id}", response_model=DataResponse[TeamMemberResponse])
async def get_team_member(
    member_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TeamMemberResponse]:
    member_service = TeamMemberService(db)
    member = await member_service.get_member(member_id)
    return DataResponse(
        message="Team member retrieved successfully",
        data=TeamMemberResponse.model_validate(member),
    )


@router.patch("/{member_id}/status", response_model=DataResponse[TeamMemberResponse])
async def update_team_member_status(
    member_id: UUID,
    status_data: TeamMemberStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Optional[str] = Query(None, max_length=191),
) -> DataResponse[TeamMemberResponse]:
    """
    Change a member's status.

    Deactivating a member hands each of their tasks back to their role.
    """
    member_service = TeamMemberService(db)
    member = await member_service.set_member_status(
        member_id, status_data.status, actor_id
    )
    return DataResponse(
        message=f"Team member status updated to {status_data.status.value}",
        data=TeamMemberResponse.model_validate(member),
    )


@router.delete("/{member_id}")
async def delete_team_member(
    member_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Optional[str] = Query(None, max_length=191),
) -> MessageResponse:
    member_service = TeamMemberService(db)
    released = await member_service.delete_member(member_id, actor_id)
    return MessageResponse(
        message=f"Team member deleted, {len(released)} task(s) handed back to their role"
    )
