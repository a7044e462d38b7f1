import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, List
from uuid import UUID

from taskgraph.core.config import settings
from taskgraph.core.utils import DateUtils
from taskgraph.models.project import Project
from taskgraph.models.task import Task, TaskMarker
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.services.interfaces import AuditSink
from taskgraph.services.task_graph_store import TaskGraphStore

logger = logging.getLogger(__name__)


@dataclass
class AnchorUpdateResult:
    project: Project
    updated_task_ids: List[UUID] = field(default_factory=list)

    @property
    def updated_task_count(self) -> int:
        return len(self.updated_task_ids)


@dataclass
class DueDateUpdateResult:
    task: Task
    updated_task_ids: List[UUID] = field(default_factory=list)

    @property
    def updated_task_count(self) -> int:
        return len(self.updated_task_ids)


class DateAnchorPropagator:
    """
    Keeps derived due dates in step with the dates they hang off.

    Two independent passes:
    * anchor pass: ``due = project anchor + days_from_meeting``
    * review pass: ``due = review task due + offset for the dependent's task type``

    A task carrying a day offset always follows the anchor pass; the review
    pass leaves it alone even if it also depends on the review task.
    """

    def __init__(self, store: TaskGraphStore, audit: AuditSink):
        self.store = store
        self.audit = audit

    async def update_project_anchor_date(
        self, project_id: UUID, new_anchor: date, actor_id: Optional[str] = None
    ) -> AnchorUpdateResult:
        """
        Move a project's meeting date and re-date everything hanging off it.
        :param project_id: UUID of the project.
        :param new_anchor: Already validated meeting date.
        :param actor_id: Who made the change.
        :return: AnchorUpdateResult with the IDs of re-dated tasks.
        """
        anchor = DateUtils.normalize_due_date(new_anchor)
        project = await self.store.set_project_anchor_date(project_id, anchor)

        updated: List[UUID] = []
        anchor_task = await self.store.get_marked_task(project.id, TaskMarker.ANCHOR)
        if anchor_task is not None and await self.store.set_due_date(
            anchor_task.id, anchor
        ):
            updated.append(anchor_task.id)

        for task_id in await self.propagate_offsets(project.id):
            if task_id not in updated:
                updated.append(task_id)

        await self.audit.record(
            ActivityEvent(
                action="project_anchor_date_changed",
                entity_type="project",
                entity_id=project.id,
                actor_id=actor_id,
                details={
                    "anchor_date": anchor.date().isoformat(),
                    "updated_task_count": len(updated),
                },
            )
        )
        logger.info(
            f"Anchor date of project {project.id} set to {anchor.date()}, "
            f"{len(updated)} task(s) re-dated"
        )
        return AnchorUpdateResult(project=project, updated_task_ids=updated)

    async def propagate_offsets(self, project_id: UUID) -> List[UUID]:
        """
        Recompute every offset task of a project from its anchor date.
        Each task's date depends only on the anchor and its own offset.
        :param project_id: UUID of the project.
        :return: IDs of tasks whose due date changed.
        """
        project = await self.store.get_project(project_id)
        if project.anchor_date is None:
            logger.info(f"Project {project_id} has no anchor date, offsets left as-is")
            return []

        changed: List[UUID] = []
        for task in await self.store.get_offset_tasks(project.id):
            if task.marker == TaskMarker.ANCHOR:
                continue
            due = DateUtils.offset_due_date(project.anchor_date, task.days_from_meeting)
            if await self.store.set_due_date(task.id, due):
                changed.append(task.id)

        review_task = await self.store.get_marked_task(project.id, TaskMarker.REVIEW)
        if review_task is not None and review_task.id in changed:
            changed.extend(await self.propagate_review_dependents(review_task.id))

        return changed

    async def propagate_review_dependents(self, review_task_id: UUID) -> List[UUID]:
        """
        Recompute tasks dated from the review task.
        :param review_task_id: UUID of the review task.
        :return: IDs of tasks whose due date changed.
        """
        review_task = await self.store.get_task(review_task_id)
        if review_task.due_date is None:
            return []

        changed: List[UUID] = []
        for dependent in await self.store.get_dependents(review_task.id):
            if dependent.days_from_meeting is not None:
                continue
            offset = self.review_offset_for(dependent)
            due = DateUtils.offset_due_date(review_task.due_date, offset)
            if await self.store.set_due_date(dependent.id, due):
                changed.append(dependent.id)

        if changed:
            logger.info(
                f"Review task {review_task.id} moved, {len(changed)} dependent(s) re-dated"
            )
        return changed

    async def update_task_due_date(
        self, task_id: UUID, new_date: date, actor_id: Optional[str] = None
    ) -> DueDateUpdateResult:
        """
        Set one task's due date and fan out where that task drives others.

        Moving the anchor task moves the project anchor date; moving the
        review task re-dates its dependents.
        """
        task = await self.store.get_task(task_id)

        if task.marker == TaskMarker.ANCHOR and task.project_id is not None:
            result = await self.update_project_anchor_date(
                task.project_id, new_date, actor_id
            )
            others = [i for i in result.updated_task_ids if i != task.id]
            return DueDateUpdateResult(task=task, updated_task_ids=others)

        changed = await self.store.set_due_date(
            task.id, DateUtils.normalize_due_date(new_date)
        )
        updated: List[UUID] = []
        if changed and task.marker == TaskMarker.REVIEW:
            updated = await self.propagate_review_dependents(task.id)

        if changed:
            await self.audit.record(
                ActivityEvent(
                    action="task_due_date_changed",
                    entity_id=task.id,
                    actor_id=actor_id,
                    details={
                        "due_date": new_date.isoformat(),
                        "updated_task_count": len(updated),
                    },
                )
            )
        return DueDateUpdateResult(task=task, updated_task_ids=updated)

    @staticmethod
    def review_offset_for(task: Task) -> int:
        """Days after the review task a dependent of this type is due"""
        if task.task_type and task.task_type in settings.REVIEW_OFFSET_DAYS:
            return settings.REVIEW_OFFSET_DAYS[task.task_type]
        return settings.REVIEW_DEFAULT_OFFSET_DAYS
