import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict
from uuid import UUID

from taskgraph.models.team_member import TeamMember
from taskgraph.schemas.activity import ActivityEvent
from taskgraph.services.interfaces import IdentityDirectory, AuditSink
from taskgraph.services.task_graph_store import TaskGraphStore

logger = logging.getLogger(__name__)


@dataclass
class RoleResolutionResult:
    project_id: UUID
    resolved_count: int = 0
    still_pending_roles: Dict[str, List[str]] = field(default_factory=dict)


class RoleAssignmentResolver:
    """
    Turns role tags on tasks into concrete team member assignments, and back.
    """

    def __init__(
        self, store: TaskGraphStore, directory: IdentityDirectory, audit: AuditSink
    ):
        self.store = store
        self.directory = directory
        self.audit = audit

    async def resolve_role_assignments(
        self, project_id: UUID, actor_id: Optional[str] = None
    ) -> RoleResolutionResult:
        """
        Resolve every pending role tag in a project.

        Each tag is replaced by all active members holding that role. Tags
        nobody holds stay on the task. Existing assignees are never removed.
        :param project_id: UUID of the project.
        :param actor_id: Who started the run.
        :return: RoleResolutionResult with the count of resolved tags and the
            roles still waiting for a member, keyed by task ID.
        """
        await self.store.get_project(project_id)
        tasks = [
            task
            for task in await self.store.get_tasks_by_project(project_id)
            if task.role_tags
        ]
        result = RoleResolutionResult(project_id=project_id)
        if not tasks:
            return result

        pool: Dict[str, List[str]] = {}
        for member in await self.directory.list_active_identities():
            if member.role and member.can_take_assignments:
                pool.setdefault(member.role, []).append(str(member.id))

        for task in tasks:
            assigned = task.assignee_ids
            pending: List[str] = []
            resolved: List[str] = []
            for role in task.role_tags:
                matches = pool.get(role)
                if not matches:
                    pending.append(role)
                    continue
                assigned.extend(m for m in matches if m not in assigned)
                resolved.append(role)

            if pending:
                result.still_pending_roles[str(task.id)] = pending
                logger.info(f"Task {task.id} has no active member for: {', '.join(pending)}")

            if not resolved:
                continue
            await self.store.set_assignment(task.id, assigned, pending)
            result.resolved_count += len(resolved)
            await self.audit.record(
                ActivityEvent(
                    action="task_roles_resolved",
                    entity_id=task.id,
                    actor_id=actor_id,
                    details={"roles": resolved, "assigned_to": assigned},
                )
            )

        logger.info(
            f"Resolved {result.resolved_count} role tag(s) in project {project_id}, "
            f"{len(result.still_pending_roles)} task(s) still pending"
        )
        return result

    async def release_member_assignments(
        self,
        member: TeamMember,
        actor_id: Optional[str] = None,
        remove_without_role: bool = False,
    ) -> List[UUID]:
        """
        Turn a member's concrete assignments back into role tags.
        :param member: Member leaving the pool.
        :param actor_id: Who made the change.
        :param remove_without_role: Drop the assignment if the member holds no
            role. Otherwise such assignments are kept.
        :return: IDs of tasks whose assignment changed.
        """
        if not member.role and not remove_without_role:
            return []

        member_key = str(member.id)
        changed: List[UUID] = []
        for task in await self.store.get_tasks_assigned_to(member.id):
            assigned = [m for m in task.assignee_ids if m != member_key]
            roles = task.role_tags
            if member.role and member.role not in roles:
                roles.append(member.role)
            if await self.store.set_assignment(task.id, assigned, roles):
                changed.append(task.id)
                await self.audit.record(
                    ActivityEvent(
                        action="task_assignment_reverted",
                        entity_id=task.id,
                        actor_id=actor_id,
                        details={"member_id": member_key, "role": member.role},
                    )
                )

        if changed:
            logger.info(
                f"Released {len(changed)} assignment(s) of member {member.id}"
                f"{f' back to role {member.role}' if member.role else ''}"
            )
        return changed
