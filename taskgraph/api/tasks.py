import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.db.client import get_db
from taskgraph.schemas.activity import ActivityResponse
from taskgraph.schemas.responses import MessageResponse, DataResponse, ListResponse
from taskgraph.schemas.task import (
    TaskCreate,
    TaskResponse,
    TaskStatusUpdate,
    TaskDueDateUpdate,
    TaskParentUpdate,
    StatusChangeResponse,
    DueDateChangeResponse,
)
from taskgraph.services.activity_service import ActivityService
from taskgraph.services.task_engine import TaskEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.post(
    "/",
    response_model=DataResponse[TaskResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    task_data: TaskCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TaskResponse]:
    """
    Create a task in a project or template.
    """
    engine = TaskEngine(db)
    task = await engine.create_task(task_data)
    return DataResponse(
        message="Task created successfully",
        data=TaskResponse.model_validate(task),
    )


@router.get("/{task_id}", response_model=DataResponse[TaskResponse])
async def get_task(
    task_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TaskResponse]:
    engine = TaskEngine(db)
    task = await engine.get_task(task_id)
    return DataResponse(
        message="Task retrieved successfully",
        data=TaskResponse.model_validate(task),
    )


@router.get("/{task_id}/subtasks", response_model=ListResponse[TaskResponse])
async def get_subtasks(
    task_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ListResponse[TaskResponse]:
    engine = TaskEngine(db)
    subtasks = await engine.get_subtasks(task_id)
    return ListResponse(
        message=f"Retrieved {len(subtasks)} subtasks",
        data=[TaskResponse.model_validate(task) for task in subtasks],
    )


@router.patch("/{task_id}/status", response_model=DataResponse[StatusChangeResponse])
async def update_task_status(
    task_id: UUID,
    status_data: TaskStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[StatusChangeResponse]:
    """
    Change a task's status.

    Completing a task completes its subtasks, and its parent once every
    sibling is done. Reopening it reopens its subtasks and completed parents.
    """
    engine = TaskEngine(db)
    result = await engine.set_task_status(
        task_id, status_data.status, status_data.actor_id
    )
    return DataResponse(
        message=f"Task status updated to {status_data.status.value}",
        data=StatusChangeResponse(
            task=TaskResponse.model_validate(result.task),
            cascaded_task_ids=result.cascaded_task_ids,
        ),
    )


@router.patch("/{task_id}/due-date", response_model=DataResponse[DueDateChangeResponse])
async def update_task_due_date(
    task_id: UUID,
    due_date_data: TaskDueDateUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[DueDateChangeResponse]:
    """
    Move a task's due date.

    Moving the meeting task moves the project anchor date. Moving the review
    task re-dates the tasks that follow it.
    """
    engine = TaskEngine(db)
    result = await engine.update_task_due_date(
        task_id, due_date_data.due_date, due_date_data.actor_id
    )
    return DataResponse(
        message="Task due date updated successfully",
        data=DueDateChangeResponse(
            task=TaskResponse.model_validate(result.task),
            updated_task_count=result.updated_task_count,
        ),
    )


@router.patch("/{task_id}/parent", response_model=DataResponse[TaskResponse])
async def move_task(
    task_id: UUID,
    parent_data: TaskParentUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DataResponse[TaskResponse]:
    engine = TaskEngine(db)
    task = await engine.move_task(task_id, parent_data.parent_task_id)
    return DataResponse(
        message="Task moved successfully",
        data=TaskResponse.model_validate(task),
    )


@router.get("/{task_id}/activity", response_model=ListResponse[ActivityResponse])
async def get_task_activity(
    task_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ListResponse[ActivityResponse]:
    """
    Get the activity trail of a task, cascaded changes included.
    """
    await TaskEngine(db).get_task(task_id)
    entries = await ActivityService(db).list_for_entity(task_id)
    return ListResponse(
        message=f"Retrieved {len(entries)} activity entries",
        data=[ActivityResponse.model_validate(entry) for entry in entries],
    )


@router.delete("/{task_id}")
async def delete_task(
    task_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """
    Delete a task together with all of its subtasks.
    """
    engine = TaskEngine(db)
    deleted = await engine.delete_task(task_id)
    return MessageResponse(message=f"Deleted {len(deleted)} task(s)")
