import logging
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.db.client import get_db
from taskgraph.schemas.responses import DataResponse, ListResponse
from taskgraph.schemas.project import (
    ProjectCreate,
    ProjectResponse,
    AnchorDateUpdate,
    AnchorUpdateResponse,
    RoleResolutionResponse,
    ProjectFromTemplateCreate,
    ProjectFromTemplateResponse,
)
from taskgraph.schemas.task import TaskResponse
from taskgraph.services.task_engine import TaskEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post(
    "/",
    response_model=DataResponse[ProjectResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_project(
    project_data: ProjectCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[ProjectResponse]:
    """
    Create an empty project.
    """
    engine = TaskEngine(db)
    project = await engine.create_project(project_data)
    return DataResponse(
        message="Project created successfully",
        data=ProjectResponse.model_validate(project),
    )


@router.post(
    "/from-template",
    response_model=DataResponse[ProjectFromTemplateResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_project_from_template(
    request: ProjectFromTemplateCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[ProjectFromTemplateResponse]:
    """
    Create a project from a template.

    Milestones and tasks are copied, offset tasks are dated from the anchor
    date and role tags are resolved against the active team.
    """
    engine = TaskEngine(db)
    result = await engine.create_project_from_template(
        template_id=request.template_id,
        name=request.name,
        description=request.description,
        anchor_date=request.anchor_date,
        actor_id=request.actor_id,
    )
    return DataResponse(
        message="Project created from template",
        data=ProjectFromTemplateResponse(
            project=ProjectResponse.model_validate(result.project),
            created_task_count=result.created_task_count,
            resolution=RoleResolutionResponse(
                project_id=result.resolution.project_id,
                resolved_count=result.resolution.resolved_count,
                still_pending_roles=result.resolution.still_pending_roles,
            ),
        ),
    )


@router.get("/{project_id}", response_model=DataResponse[ProjectResponse])
async def get_project(
    project_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[ProjectResponse]:
    engine = TaskEngine(db)
    project = await engine.get_project(project_id)
    return DataResponse(
        message="Project retrieved successfully",
        data=ProjectResponse.model_validate(project),
    )


@router.get("/{project_id}/tasks", response_model=ListResponse[TaskResponse])
async def get_project_tasks(
    project_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ListResponse[TaskResponse]:
    """
    Get every task of a project, hierarchy flattened.
    """
    engine = TaskEngine(db)
    tasks = await engine.list_project_tasks(project_id)
    return ListResponse(
        message=f"Retrieved {len(tasks)} tasks",
        data=[TaskResponse.model_validate(task) for task in tasks],
    )


@router.put(
    "/{project_id}/anchor-date", response_model=DataResponse[AnchorUpdateResponse]
)
async def update_anchor_date(
    project_id: UUID,
    update_data: AnchorDateUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[AnchorUpdateResponse]:
    """
    Move the project meeting date.

    Every task with a day offset is re-dated from the new anchor.
    """
    engine = TaskEngine(db)
    result = await engine.update_project_anchor_date(
        project_id, update_data.anchor_date, update_data.actor_id
    )
    return DataResponse(
        message="Anchor date updated successfully",
        data=AnchorUpdateResponse(
            project_id=result.project.id,
            anchor_date=result.project.anchor_date,
            updated_task_count=result.updated_task_count,
        ),
    )


@router.post(
    "/{project_id}/resolve-roles", response_model=DataResponse[RoleResolutionResponse]
)
async def resolve_roles(
    project_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Optional[str] = Query(None, max_length=191, description="Who ran it"),
) -> DataResponse[RoleResolutionResponse]:
    """
    Assign active team members to every role tag they hold.

    Roles nobody holds stay pending and are listed per task.
    """
    engine = TaskEngine(db)
    result = await engine.resolve_role_assignments(project_id, actor_id)
    return DataResponse(
        message="Role assignments resolved",
        data=RoleResolutionResponse(
            project_id=result.project_id,
            resolved_count=result.resolved_count,
            still_pending_roles=result.still_pending_roles,
        ),
    )
