import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, List, Dict, Set
from uuid import UUID

from taskgraph.core.exceptions import CycleDetectedException
from taskgraph.models.project import Project
from taskgraph.models.task import Task, TaskMarker
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.schemas.task import TaskCreate
from taskgraph.services.date_anchor_propagator import DateAnchorPropagator
from taskgraph.services.interfaces import AuditSink
from taskgraph.services.role_resolver import RoleAssignmentResolver, RoleResolutionResult
from taskgraph.services.task_graph_store import TaskGraphStore

logger = logging.getLogger(__name__)


@dataclass
class TemplateInstantiation:
    project: Project
    created_task_ids: List[UUID]
    resolution: RoleResolutionResult

    @property
    def created_task_count(self) -> int:
        return len(self.created_task_ids)


class ProjectTemplateService:
    """
    Builds projects out of templates.

    Milestones and tasks are copied with their references remapped onto the
    copies, then the new project is dated from its anchor and its role tags
    are resolved. Commit is left to the caller.
    """

    def __init__(
        self,
        store: TaskGraphStore,
        propagator: DateAnchorPropagator,
        resolver: RoleAssignmentResolver,
        audit: AuditSink,
    ):
        self.store = store
        self.propagator = propagator
        self.resolver = resolver
        self.audit = audit

    async def create_project_from_template(
        self,
        template_id: UUID,
        name: str,
        description: Optional[str] = None,
        anchor_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> TemplateInstantiation:
        """
        Instantiate a template as a new project.
        :param template_id: UUID of the template to copy.
        :param name: Name of the new project.
        :param description: Project description, defaults to the template's.
        :param anchor_date: Meeting date, already validated.
        :param actor_id: Who created the project.
        :return: TemplateInstantiation with the project, copied task IDs and
            the role resolution outcome.
        """
        template = await self.store.get_template(template_id)
        project = await self.store.create_project(
            name=name,
            description=description if description is not None else template.description,
            template_id=template.id,
        )

        milestone_map: Dict[UUID, UUID] = {}
        for milestone in await self.store.get_milestones_by_template(template.id):
            copy = await self.store.create_milestone(
                title=milestone.title,
                project_id=project.id,
                sort_order=milestone.sort_order,
            )
            milestone_map[milestone.id] = copy.id

        task_map: Dict[UUID, UUID] = {}
        template_tasks = await self.store.get_tasks_by_template(template.id)
        for source in self._parents_first(template_tasks):
            copy = await self.store.create_task(
                TaskCreate(
                    title=source.title,
                    description=source.description,
                    project_id=project.id,
                    milestone_id=milestone_map.get(source.milestone_id),
                    parent_task_id=task_map.get(source.parent_task_id),
                    sort_order=source.sort_order,
                    task_type=source.task_type,
                    marker=source.marker,
                    due_date=source.due_date,
                    days_from_meeting=source.days_from_meeting,
                    assigned_to=source.assignee_ids,
                    assigned_to_role=source.role_tags,
                )
            )
            task_map[source.id] = copy.id

        # Dependencies may point forward, so link them once every copy exists
        for source in template_tasks:
            if source.depends_on_task_id in task_map:
                copy = await self.store.get_task(task_map[source.id])
                copy.depends_on_task_id = task_map[source.depends_on_task_id]
        await self.store.db.flush()

        if anchor_date is not None:
            await self.propagator.update_project_anchor_date(
                project.id, anchor_date, actor_id
            )
            review_task = await self.store.get_marked_task(project.id, TaskMarker.REVIEW)
            if review_task is not None:
                await self.propagator.propagate_review_dependents(review_task.id)

        resolution = await self.resolver.resolve_role_assignments(project.id, actor_id)

        await self.audit.record(
            ActivityEvent(
                action="project_created_from_template",
                entity_type="project",
                entity_id=project.id,
                actor_id=actor_id,
                details={
                    "template_id": str(template.id),
                    "created_task_count": len(task_map),
                },
            )
        )
        logger.info(
            f"Project {project.id} created from template {template.id} "
            f"with {len(task_map)} task(s)"
        )
        return TemplateInstantiation(
            project=project,
            created_task_ids=list(task_map.values()),
            resolution=resolution,
        )

    @staticmethod
    def _parents_first(tasks: List[Task]) -> List[Task]:
        """Order template tasks so every parent precedes its children"""
        index = TaskGraphStore.build_child_index(tasks)
        known = {task.id for task in tasks}
        roots = [t for t in tasks if t.parent_task_id is None or t.parent_task_id not in known]

        ordered: List[Task] = []
        visited: Set[UUID] = set()
        stack = list(reversed(roots))
        while stack:
            task = stack.pop()
            if task.id in visited:
                logger.error(f"Cycle in template task hierarchy at {task.id}")
                raise CycleDetectedException(task.id)
            visited.add(task.id)
            ordered.append(task)
            stack.extend(reversed(index.get(task.id, [])))
        return ordered
