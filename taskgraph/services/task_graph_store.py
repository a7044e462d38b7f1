import logging
from collections import defaultdict
from datetime import date, datetime, UTC
from typing import Optional, List, Dict, Iterable, Set
from uuid import UUID

from sqlalchemy import select, update, delete, String, cast
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.exceptions import (
    NotFoundException,
    ValidationException,
    CycleDetectedException,
)
from taskgraph.core.utils import DateUtils
from taskgraph.models.milestone import Milestone
from taskgraph.models.project import Project, ProjectTemplate
from taskgraph.models.task import (
    Task,
    TaskStatus,
    TaskMarker,
    TaskComment,
    TaskAttachment,
    TaskUserPriority,
)
from taskgraph.schemas.task import TaskCreate

logger = logging.getLogger(__name__)


class TaskGraphStore:
    """
    Persistence of tasks, milestones and their hierarchy pointers.

    Every write touches a single row and is flushed straight away, so later
    reads in the same session see it. Committing is left to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==========================================
    # Reads
    # ==========================================

    async def find_task(self, task_id: UUID) -> Optional[Task]:
        return await self.db.get(Task, task_id)

    async def get_task(self, task_id: UUID) -> Task:
        """
        Retrieve a task by its ID.
        :param task_id: UUID of the task to retrieve.
        :return: Task object, raises NotFoundException if missing.
        """
        task = await self.find_task(task_id)
        if not task:
            raise NotFoundException("Task", str(task_id))
        return task

    async def get_project(self, project_id: UUID) -> Project:
        project = await self.db.get(Project, project_id)
        if not project:
            raise NotFoundException("Project", str(project_id))
        return project

    async def get_template(self, template_id: UUID) -> ProjectTemplate:
        template = await self.db.get(ProjectTemplate, template_id)
        if not template:
            raise NotFoundException("Template", str(template_id))
        return template

    async def get_milestone(self, milestone_id: UUID) -> Milestone:
        milestone = await self.db.get(Milestone, milestone_id)
        if not milestone:
            raise NotFoundException("Milestone", str(milestone_id))
        return milestone

    async def get_children(self, parent_id: UUID) -> List[Task]:
        """
        Get direct children of a task in sibling order.
        :param parent_id: UUID of the parent task.
        :return: List of child tasks.
        """
        stmt = (
            select(Task)
            .where(Task.parent_task_id == parent_id)
            .order_by(Task.sort_order, Task.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_tasks_by_project(self, project_id: UUID) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.project_id == project_id)
            .order_by(Task.sort_order, Task.level, Task.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_tasks_by_template(self, template_id: UUID) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.template_id == template_id)
            .order_by(Task.sort_order, Task.level, Task.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_milestones_by_template(self, template_id: UUID) -> List[Milestone]:
        stmt = (
            select(Milestone)
            .where(Milestone.template_id == template_id)
            .order_by(Milestone.sort_order, Milestone.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_offset_tasks(self, project_id: UUID) -> List[Task]:
        """Tasks of a project whose due date is anchored to the meeting date"""
        stmt = select(Task).where(
            Task.project_id == project_id, Task.days_from_meeting.is_not(None)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_marked_task(
        self, project_id: UUID, marker: TaskMarker
    ) -> Optional[Task]:
        """
        Find the anchor or review task of a project.
        The oldest one wins if the marker was set more than once.
        """
        stmt = (
            select(Task)
            .where(Task.project_id == project_id, Task.marker == marker)
            .order_by(Task.created_at)
            .limit(1)
        )
        return await self.db.scalar(stmt)

    async def get_dependents(self, task_id: UUID) -> List[Task]:
        """Tasks whose due date is driven by the given task"""
        stmt = (
            select(Task)
            .where(Task.depends_on_task_id == task_id)
            .order_by(Task.sort_order, Task.created_at)
        )
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def get_tasks_assigned_to(self, member_id: UUID) -> List[Task]:
        """
        Get every task concretely assigned to a member.
        The text match narrows candidates, membership is checked exactly.
        """
        member_key = str(member_id)
        stmt = select(Task).where(
            Task.assigned_to.is_not(None),
            cast(Task.assigned_to, String).contains(member_key),
        )
        result = await self.db.scalars(stmt)
        return [task for task in result.all() if member_key in task.assignee_ids]

    @staticmethod
    def build_child_index(tasks: Iterable[Task]) -> Dict[Optional[UUID], List[Task]]:
        """
        Build a parent -> children adjacency from parent pointers.
        Root tasks are listed under ``None``. Siblings are ordered by
        ``sort_order``; ties keep the order of ``tasks``.
        """
        index: Dict[Optional[UUID], List[Task]] = defaultdict(list)
        for task in tasks:
            index[task.parent_task_id].append(task)
        for children in index.values():
            children.sort(key=lambda t: t.sort_order)
        return index

    async def get_ancestors(self, task: Task) -> List[Task]:
        """
        Walk parent pointers up to the root.

        A parent pointer to a missing task ends the walk there.
        :param task: Task to start from (not included).
        :return: Ancestors, nearest first.
        :raises CycleDetectedException: If a task is met twice.
        """
        visited: Set[UUID] = {task.id}
        ancestors: List[Task] = []
        parent_id = task.parent_task_id
        while parent_id is not None:
            if parent_id in visited:
                logger.error(f"Cycle in task hierarchy above task {task.id} at {parent_id}")
                raise CycleDetectedException(parent_id)
            visited.add(parent_id)
            parent = await self.find_task(parent_id)
            if parent is None:
                logger.warning(f"Task {task.id} has a dangling ancestor {parent_id}")
                break
            ancestors.append(parent)
            parent_id = parent.parent_task_id
        return ancestors

    async def get_ancestor_ids(self, task: Task) -> List[UUID]:
        return [ancestor.id for ancestor in await self.get_ancestors(task)]

    async def get_subtree_ids(self, root_id: UUID) -> List[UUID]:
        """
        Collect a task and all its descendants, pre-order.
        :raises CycleDetectedException: If a task is met twice.
        """
        visited: Set[UUID] = set()
        ordered: List[UUID] = []
        stack = [root_id]
        while stack:
            task_id = stack.pop()
            if task_id in visited:
                logger.error(f"Cycle in task hierarchy below task {root_id} at {task_id}")
                raise CycleDetectedException(task_id)
            visited.add(task_id)
            ordered.append(task_id)
            children = await self.get_children(task_id)
            stack.extend(child.id for child in reversed(children))
        return ordered

    # ==========================================
    # Single-task writes
    # ==========================================

    async def set_due_date(self, task_id: UUID, due_date: Optional[datetime]) -> bool:
        """
        Set a task's due date.
        :return: True if the stored value changed.
        """
        task = await self.get_task(task_id)
        if DateUtils.same_instant(task.due_date, due_date):
            return False
        task.due_date = due_date
        await self.db.flush()
        return True

    async def set_status(self, task_id: UUID, status: TaskStatus) -> bool:
        """
        Set a task's status, keeping completed_at in step with it.
        :return: True if the status changed.
        """
        task = await self.get_task(task_id)
        if task.status == status:
            return False

        task.status = status
        if status == TaskStatus.COMPLETED:
            task.completed_at = datetime.now(UTC)
        else:
            task.completed_at = None
        await self.db.flush()
        return True

    async def set_assignment(
        self, task_id: UUID, assigned_to: List[str], assigned_to_role: List[str]
    ) -> bool:
        """
        Replace a task's concrete assignees and pending role tags.
        :return: True if either list changed.
        """
        task = await self.get_task(task_id)
        assigned_to = list(dict.fromkeys(assigned_to))
        assigned_to_role = list(dict.fromkeys(assigned_to_role))
        if task.assignee_ids == assigned_to and task.role_tags == assigned_to_role:
            return False

        # JSON columns only notice reassignment, so always hand over new lists
        task.assigned_to = assigned_to
        task.assigned_to_role = assigned_to_role
        await self.db.flush()
        return True

    async def set_project_anchor_date(
        self, project_id: UUID, anchor_date: Optional[datetime]
    ) -> Project:
        project = await self.get_project(project_id)
        if not DateUtils.same_instant(project.anchor_date, anchor_date):
            project.anchor_date = anchor_date
            await self.db.flush()
        return project

    async def set_parent(self, task_id: UUID, parent_id: Optional[UUID]) -> Task:
        """
        Move a task under another parent, or to the root.
        :raises ValidationException: If the move would make the task its own ancestor.
        """
        task = await self.get_task(task_id)
        level = 0
        if parent_id is not None:
            parent = await self._get_parent_for(task.project_id, task.template_id, parent_id)
            if parent.id == task.id or task.id in await self.get_ancestor_ids(parent):
                raise ValidationException(
                    "A task cannot be moved under itself or its descendants",
                    "parent_task_id",
                )
            level = parent.level + 1

        task.parent_task_id = parent_id
        shift = level - task.level
        if shift:
            for descendant_id in await self.get_subtree_ids(task.id):
                descendant = await self.get_task(descendant_id)
                descendant.level += shift
        await self.db.flush()
        return task

    # ==========================================
    # Lifecycle
    # ==========================================

    async def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        anchor_date: Optional[date] = None,
        template_id: Optional[UUID] = None,
    ) -> Project:
        project = Project(
            name=name,
            description=description,
            anchor_date=(
                DateUtils.normalize_due_date(anchor_date) if anchor_date else None
            ),
            template_id=template_id,
        )
        self.db.add(project)
        await self.db.flush()
        return project

    async def create_template(
        self,
        name: str,
        description: Optional[str] = None,
        meeting_type: Optional[str] = None,
    ) -> ProjectTemplate:
        template = ProjectTemplate(
            name=name, description=description, meeting_type=meeting_type
        )
        self.db.add(template)
        await self.db.flush()
        return template

    async def create_milestone(
        self,
        title: str,
        project_id: Optional[UUID] = None,
        template_id: Optional[UUID] = None,
        sort_order: int = 0,
    ) -> Milestone:
        if (project_id is None) == (template_id is None):
            raise ValidationException(
                "Exactly one of project_id or template_id is required"
            )
        if project_id is not None:
            await self.get_project(project_id)
        else:
            await self.get_template(template_id)

        milestone = Milestone(
            title=title,
            project_id=project_id,
            template_id=template_id,
            sort_order=sort_order,
        )
        self.db.add(milestone)
        await self.db.flush()
        return milestone

    async def create_task(self, task_data: TaskCreate) -> Task:
        """
        Create a task under a project or template.
        :param task_data: TaskCreate schema containing task details.
        :return: Created Task object.
        """
        project: Optional[Project] = None
        if task_data.project_id is not None:
            project = await self.get_project(task_data.project_id)
        else:
            await self.get_template(task_data.template_id)

        if task_data.milestone_id is not None:
            milestone = await self.get_milestone(task_data.milestone_id)
            if (milestone.project_id, milestone.template_id) != (
                task_data.project_id,
                task_data.template_id,
            ):
                raise ValidationException(
                    "Milestone must belong to the same project or template",
                    "milestone_id",
                )

        level = 0
        if task_data.parent_task_id is not None:
            parent = await self._get_parent_for(
                task_data.project_id, task_data.template_id, task_data.parent_task_id
            )
            level = parent.level + 1

        if task_data.depends_on_task_id is not None:
            await self._get_parent_for(
                task_data.project_id,
                task_data.template_id,
                task_data.depends_on_task_id,
                field="depends_on_task_id",
            )

        due_date = DateUtils.to_utc(task_data.due_date)
        if project is not None and project.anchor_date is not None:
            if task_data.marker == TaskMarker.ANCHOR:
                due_date = DateUtils.normalize_due_date(project.anchor_date)
            elif task_data.days_from_meeting is not None:
                due_date = DateUtils.offset_due_date(
                    project.anchor_date, task_data.days_from_meeting
                )

        task = Task(
            title=task_data.title,
            description=task_data.description,
            project_id=task_data.project_id,
            template_id=task_data.template_id,
            milestone_id=task_data.milestone_id,
            parent_task_id=task_data.parent_task_id,
            level=level,
            sort_order=task_data.sort_order,
            task_type=task_data.task_type,
            marker=task_data.marker,
            due_date=due_date,
            days_from_meeting=task_data.days_from_meeting,
            depends_on_task_id=task_data.depends_on_task_id,
            assigned_to=[str(member_id) for member_id in task_data.assigned_to],
            assigned_to_role=list(task_data.assigned_to_role),
        )
        self.db.add(task)
        await self.db.flush()
        return task

    async def delete_task(self, task_id: UUID) -> List[UUID]:
        """
        Delete a task, its subtasks and their comments, files and priorities.
        Tasks that depended on a deleted task lose the dependency.
        :return: IDs of every deleted task.
        """
        await self.get_task(task_id)
        subtree = await self.get_subtree_ids(task_id)

        await self.db.execute(delete(TaskComment).where(TaskComment.task_id.in_(subtree)))
        await self.db.execute(
            delete(TaskAttachment).where(TaskAttachment.task_id.in_(subtree))
        )
        await self.db.execute(
            delete(TaskUserPriority).where(TaskUserPriority.task_id.in_(subtree))
        )
        await self.db.execute(
            update(Task)
            .where(Task.depends_on_task_id.in_(subtree))
            .values(depends_on_task_id=None)
        )
        # Children first so the parent pointers never dangle
        for doomed_id in reversed(subtree):
            await self.db.execute(delete(Task).where(Task.id == doomed_id))
        await self.db.flush()

        logger.info(f"Deleted task {task_id} with {len(subtree) - 1} descendant(s)")
        return subtree

    async def delete_milestone(self, milestone_id: UUID) -> int:
        """
        Delete a milestone, leaving its tasks in place without a milestone.
        :return: Number of tasks detached.
        """
        await self.get_milestone(milestone_id)
        result = await self.db.execute(
            update(Task)
            .where(Task.milestone_id == milestone_id)
            .values(milestone_id=None)
        )
        await self.db.execute(delete(Milestone).where(Milestone.id == milestone_id))
        await self.db.flush()
        return result.rowcount or 0

    async def _get_parent_for(
        self,
        project_id: Optional[UUID],
        template_id: Optional[UUID],
        related_id: UUID,
        field: str = "parent_task_id",
    ) -> Task:
        related = await self.get_task(related_id)
        if (related.project_id, related.template_id) != (project_id, template_id):
            raise ValidationException(
                "Related task must be in the same project or template", field
            )
        return related
