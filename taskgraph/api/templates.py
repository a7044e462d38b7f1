from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.db.client import get_db
from taskgraph.schemas.project import TemplateCreate, TemplateResponse
from taskgraph.schemas.responses import DataResponse, ListResponse
from taskgraph.schemas.task import TaskResponse
from taskgraph.services.task_engine import TaskEngine

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.post(
    "/",
    response_model=DataResponse[TemplateResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_template(
    template_data: TemplateCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TemplateResponse]:
    """
    Create a project template. Tasks and milestones are added to it with
    ``template_id`` set.
    """
    engine = TaskEngine(db)
    template = await engine.create_template(template_data)
    return DataResponse(
        message="Template created successfully",
        data=TemplateResponse.model_validate(template),
    )


@router.get("/{template_id}", response_model=DataResponse[TemplateResponse])
async def get_template(
    template_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TemplateResponse]:
    engine = TaskEngine(db)
    template = await engine.get_template(template_id)
    return DataResponse(
        message="Template retrieved successfully",
        data=TemplateResponse.model_validate(template),
    )


@router.get("/{template_id}/tasks", response_model=ListResponse[TaskResponse])
async def get_template_tasks(
    template_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ListResponse[TaskResponse]:
    engine = TaskEngine(db)
    tasks = await engine.list_template_tasks(template_id)
    return ListResponse(
        message=f"Retrieved {len(tasks)} tasks",
        data=[TaskResponse.model_validate(task) for task in tasks],
    )
