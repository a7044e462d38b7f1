import logging
from typing import Optional, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.utils import DateUtils, DateLike
from taskgraph.models.milestone import Milestone
from taskgraph.models.project import Project, ProjectTemplate
from taskgraph.models.task import Task, TaskStatus, TaskMarker
from taskgraph.schemas.project import ProjectCreate, MilestoneCreate, TemplateCreate
from taskgraph.schemas.task import TaskCreate
from taskgraph.services.activity_service import ActivityService
from taskgraph.services.common import CommonService
from taskgraph.services.completion_cascade import (
    CompletionCascadeEngine,
    StatusChangeResult,
)
from taskgraph.services.date_anchor_propagator import (
    DateAnchorPropagator,
    AnchorUpdateResult,
    DueDateUpdateResult,
)
from taskgraph.services.interfaces import IdentityDirectory, AuditSink
from taskgraph.services.role_resolver import RoleAssignmentResolver, RoleResolutionResult
from taskgraph.services.task_graph_store import TaskGraphStore
from taskgraph.services.team_member_service import TeamMemberDirectory
from taskgraph.services.template_service import (
    ProjectTemplateService,
    TemplateInstantiation,
)

logger = logging.getLogger(__name__)


class TaskEngine:
    """
    Entry point for every task graph mutation.

    Each public method is one unit of work: it either lands all of its writes
    or, on any error, none of them. Dates are validated before anything is
    written.
    """

    def __init__(
        self,
        db: AsyncSession,
        directory: Optional[IdentityDirectory] = None,
        audit: Optional[AuditSink] = None,
    ):
        self.db = db
        self.store = TaskGraphStore(db)
        self.audit = audit or ActivityService(db)
        self.directory = directory or TeamMemberDirectory(db)
        self.propagator = DateAnchorPropagator(self.store, self.audit)
        self.cascade = CompletionCascadeEngine(self.store, self.audit)
        self.resolver = RoleAssignmentResolver(self.store, self.directory, self.audit)
        self.templates = ProjectTemplateService(
            self.store, self.propagator, self.resolver, self.audit
        )

    # ==========================================
    # Core operations
    # ==========================================

    async def update_project_anchor_date(
        self, project_id: UUID, new_date: DateLike, actor_id: Optional[str] = None
    ) -> AnchorUpdateResult:
        """
        Move a project's anchor date and re-date its offset tasks.
        :param project_id: UUID of the project.
        :param new_date: New anchor date (date, datetime or ISO string).
        :param actor_id: Who made the change.
        :return: AnchorUpdateResult with the re-dated task IDs.
        :raises InvalidDateException: Before any write, if the date is bad.
        """
        anchor = DateUtils.parse_date(new_date, "anchor_date")
        async with CommonService.transaction(self.db, "update_project_anchor_date"):
            return await self.propagator.update_project_anchor_date(
                project_id, anchor, actor_id
            )

    async def update_task_due_date(
        self, task_id: UUID, new_date: DateLike, actor_id: Optional[str] = None
    ) -> DueDateUpdateResult:
        due = DateUtils.parse_date(new_date, "due_date")
        async with CommonService.transaction(self.db, "update_task_due_date"):
            return await self.propagator.update_task_due_date(task_id, due, actor_id)

    async def set_task_status(
        self, task_id: UUID, new_status: TaskStatus, actor_id: Optional[str] = None
    ) -> StatusChangeResult:
        """
        Change a task's status and cascade it through the hierarchy.
        :raises CycleDetectedException: If the hierarchy loops; nothing is written.
        """
        async with CommonService.transaction(self.db, "set_task_status"):
            return await self.cascade.set_task_status(task_id, new_status, actor_id)

    async def resolve_role_assignments(
        self, project_id: UUID, actor_id: Optional[str] = None
    ) -> RoleResolutionResult:
        async with CommonService.transaction(self.db, "resolve_role_assignments"):
            return await self.resolver.resolve_role_assignments(project_id, actor_id)

    # ==========================================
    # Projects and templates
    # ==========================================

    async def get_project(self, project_id: UUID) -> Project:
        return await self.store.get_project(project_id)

    async def create_project(self, project_data: ProjectCreate) -> Project:
        anchor = (
            DateUtils.parse_date(project_data.anchor_date, "anchor_date")
            if project_data.anchor_date is not None
            else None
        )
        async with CommonService.transaction(self.db, "create_project"):
            project = await self.store.create_project(
                name=project_data.name,
                description=project_data.description,
                anchor_date=anchor,
            )
        logger.info(f"Project created: {project.name} ({project.id})")
        return project

    async def get_template(self, template_id: UUID) -> ProjectTemplate:
        return await self.store.get_template(template_id)

    async def create_template(self, template_data: TemplateCreate) -> ProjectTemplate:
        async with CommonService.transaction(self.db, "create_template"):
            return await self.store.create_template(
                name=template_data.name,
                description=template_data.description,
                meeting_type=template_data.meeting_type,
            )

    async def create_project_from_template(
        self,
        template_id: UUID,
        name: str,
        description: Optional[str] = None,
        anchor_date: Optional[DateLike] = None,
        actor_id: Optional[str] = None,
    ) -> TemplateInstantiation:
        """
        Copy a template into a new, dated and role-resolved project.
        :param template_id: UUID of the template.
        :param name: Name of the new project.
        :param description: Optional description, defaults to the template's.
        :param anchor_date: Optional meeting date.
        :param actor_id: Who created the project.
        :return: TemplateInstantiation.
        """
        anchor = (
            DateUtils.parse_date(anchor_date, "anchor_date")
            if anchor_date is not None
            else None
        )
        async with CommonService.transaction(self.db, "create_project_from_template"):
            return await self.templates.create_project_from_template(
                template_id, name, description, anchor, actor_id
            )

    # ==========================================
    # Tasks and milestones
    # ==========================================

    async def get_task(self, task_id: UUID) -> Task:
        return await self.store.get_task(task_id)

    async def list_project_tasks(self, project_id: UUID) -> List[Task]:
        await self.store.get_project(project_id)
        return await self.store.get_tasks_by_project(project_id)

    async def list_template_tasks(self, template_id: UUID) -> List[Task]:
        await self.store.get_template(template_id)
        return await self.store.get_tasks_by_template(template_id)

    async def get_subtasks(self, task_id: UUID) -> List[Task]:
        await self.store.get_task(task_id)
        return await self.store.get_children(task_id)

    async def create_task(self, task_data: TaskCreate) -> Task:
        """
        Create a task and date it from whatever drives it.
        :param task_data: TaskCreate schema containing task details.
        :return: Created Task object.
        """
        async with CommonService.transaction(self.db, "create_task"):
            task = await self.store.create_task(task_data)
            if task.days_from_meeting is None and task.depends_on_task_id is not None:
                driver = await self.store.get_task(task.depends_on_task_id)
                if driver.marker == TaskMarker.REVIEW:
                    await self.propagator.propagate_review_dependents(driver.id)
        logger.info(f"Task created: {task.title} ({task.id})")
        return task

    async def move_task(self, task_id: UUID, parent_id: Optional[UUID]) -> Task:
        async with CommonService.transaction(self.db, "move_task"):
            return await self.store.set_parent(task_id, parent_id)

    async def delete_task(self, task_id: UUID) -> List[UUID]:
        async with CommonService.transaction(self.db, "delete_task"):
            return await self.store.delete_task(task_id)

    async def get_milestone(self, milestone_id: UUID) -> Milestone:
        return await self.store.get_milestone(milestone_id)

    async def create_milestone(self, milestone_data: MilestoneCreate) -> Milestone:
        async with CommonService.transaction(self.db, "create_milestone"):
            return await self.store.create_milestone(
                title=milestone_data.title,
                project_id=milestone_data.project_id,
                template_id=milestone_data.template_id,
                sort_order=milestone_data.sort_order,
            )

    async def delete_milestone(self, milestone_id: UUID) -> int:
        async with CommonService.transaction(self.db, "delete_milestone"):
            return await self.store.delete_milestone(milestone_id)
